import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from goalcoach.prompts import (
    PHOENIX_QUESTIONS,
    PHOENIX_SUGGESTIONS,
    PHOENIX_SYSTEM_PROMPT,
    PHOENIX_WELCOME,
    RAVEN_QUESTIONS,
    RAVEN_SUGGESTIONS,
    RAVEN_SYSTEM_PROMPT,
    RAVEN_WELCOME,
    SKYLER_QUESTIONS,
    SKYLER_SUGGESTIONS,
    SKYLER_SYSTEM_PROMPT,
    SKYLER_WELCOME,
)


def _new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    # Hidden priming turn, forwarded to the delegate but never rendered.
    SYSTEM = "system"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Persona(str, Enum):
    """The three coach personalities.

    Each member carries everything that differs between coaches: display
    colours, the system prompt sent to the model, the static welcome greeting,
    the three scripted probing questions and the suggested quick replies.
    """

    SKYLER = ("Skyler", "#4a90e2", "from-blue-400 to-blue-600", SKYLER_SYSTEM_PROMPT, SKYLER_WELCOME, SKYLER_QUESTIONS, SKYLER_SUGGESTIONS)
    RAVEN = ("Raven", "#8b5cf6", "from-purple-400 to-purple-600", RAVEN_SYSTEM_PROMPT, RAVEN_WELCOME, RAVEN_QUESTIONS, RAVEN_SUGGESTIONS)
    PHOENIX = ("Phoenix", "#f59e0b", "from-orange-400 to-red-600", PHOENIX_SYSTEM_PROMPT, PHOENIX_WELCOME, PHOENIX_QUESTIONS, PHOENIX_SUGGESTIONS)

    def __new__(
        cls,
        value: str,
        color: str,
        gradient: str,
        system_prompt: str,
        welcome_message: str,
        questions: Tuple[str, ...],
        suggestions: Tuple[str, ...],
    ):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.color = color
        obj.gradient = gradient
        obj.system_prompt = system_prompt.strip()
        obj.welcome_message = welcome_message
        obj.questions = questions
        obj.suggestions = suggestions
        return obj


class Message(BaseModel):
    id: str = Field(default_factory=_new_id)
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class PlanStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str = ""
    estimated_days: int = Field(..., gt=0, alias="estimatedDays")
    difficulty: Difficulty
    completed: bool = False


class Plan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    title: str
    description: str = ""
    total_duration: int = Field(..., alias="totalDuration", description="Days; not reconciled with the step durations.")
    feasibility_score: int = Field(..., ge=0, le=100, alias="feasibilityScore")
    steps: List[PlanStep] = Field(default_factory=list)

    @field_validator("steps")
    @classmethod
    def validate_unique_step_ids(cls, v: List[PlanStep]) -> List[PlanStep]:
        ids = [s.id for s in v]
        if len(ids) != len(set(ids)):
            raise ValueError("step ids must be unique within a plan")
        return v

    def to_payload(self) -> dict:
        """Wire/storage form with the camelCase keys the frontend reads."""
        return self.model_dump(mode="json", by_alias=True)


class StageDecision(BaseModel):
    next_utterance: str
    should_generate_plan: bool = False


class ConversationRecord(BaseModel):
    user_id: str
    messages: List[Message] = Field(default_factory=list)
    goal: Optional[str] = None
    updated_at: Optional[datetime] = None


class PlanRecord(BaseModel):
    id: str
    user_id: str
    plan: Plan
    avatar: Persona
    generated_at: datetime

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "plan": self.plan.to_payload(),
            "avatar": self.avatar.value,
            "generated_at": self.generated_at.isoformat(),
        }


def count_user_turns(history: List[Message]) -> int:
    return sum(1 for m in history if m.role == Role.USER)
