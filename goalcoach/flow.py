"""User-facing flow: intro -> persona selection -> conversation -> plan review -> complete."""

import asyncio
import logging
from enum import Enum
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from goalcoach.errors import DelegateError, FlowError, StorageError
from goalcoach.models import Message, Persona, Plan, Role, StageDecision, count_user_turns
from goalcoach.normalizer import normalize_plan
from goalcoach.prompts import REFINEMENT_MESSAGE
from goalcoach.stage_controller import StageController

logger = logging.getLogger(__name__)


class FlowStage(str, Enum):
    INTRO = "intro"
    PERSONA_SELECTION = "persona_selection"
    CONVERSATION = "conversation"
    PLAN_REVIEW = "plan_review"
    COMPLETE = "complete"


class PlannerSession:
    """One user's pass through the planner.

    Only one request is ever outstanding: while ``is_loading`` is set further
    messages are rejected, which also keeps delegate replies in issue order.
    """

    def __init__(
        self,
        user_id: str,
        controller: StageController,
        coach,
        gateway=None,
        transition_delay: float = 2.0,
    ):
        self.user_id = user_id
        self.controller = controller
        self.coach = coach
        self.gateway = gateway
        self.transition_delay = transition_delay

        self.stage = FlowStage.INTRO
        self.persona: Optional[Persona] = None
        self.messages: List[Message] = []
        self.goal: Optional[str] = None
        self.plan: Optional[Plan] = None
        self.is_loading = False
        self.is_generating_plan = False
        self._plan_task: Optional[asyncio.Task] = None

    @classmethod
    def resume(cls, user_id: str, persona: Persona, controller: StageController, coach, gateway, **kwargs) -> "PlannerSession":
        """Pick up a stored conversation where it left off.

        Falls back to a fresh conversation when the store cannot be read.
        """
        session = cls(user_id, controller, coach, gateway=gateway, **kwargs)
        session.persona = persona
        session.stage = FlowStage.PERSONA_SELECTION
        try:
            record = gateway.load_conversation(user_id)
        except StorageError as e:
            logger.warning("[Flow] Could not resume conversation for '%s': %s", user_id, e)
            record = None

        if record is not None and record.messages:
            session.messages = list(record.messages)
            session.goal = record.goal
            session.stage = FlowStage.CONVERSATION
        else:
            session.begin_conversation()
        return session

    # --- Stage transitions ---

    def _require(self, *stages: FlowStage) -> None:
        if self.stage not in stages:
            allowed = ", ".join(s.value for s in stages)
            raise FlowError(f"Action not allowed in stage '{self.stage.value}' (expected {allowed})")

    def start(self) -> None:
        self._require(FlowStage.INTRO)
        self.stage = FlowStage.PERSONA_SELECTION

    def select_persona(self, persona: Persona) -> None:
        self._require(FlowStage.PERSONA_SELECTION)
        self.persona = Persona(persona)

    def begin_conversation(self) -> Message:
        """Enter the conversation with the persona's static welcome greeting."""
        self._require(FlowStage.PERSONA_SELECTION)
        if self.persona is None:
            raise FlowError("Choose a coach before starting the conversation")

        self.stage = FlowStage.CONVERSATION
        welcome = Message(role=Role.ASSISTANT, content=self.persona.welcome_message)
        self._add(welcome)
        return welcome

    async def send_message(self, content: str) -> StageDecision:
        self._require(FlowStage.CONVERSATION)
        if self.is_loading:
            raise FlowError("A reply is still on its way")
        if not content or not content.strip():
            raise FlowError("Message is empty")

        self.is_loading = True
        plan_scheduled = False
        try:
            if self.goal is None:
                self.goal = content.strip()
            await run_in_threadpool(self._add, Message(role=Role.USER, content=content.strip()))

            decision = await run_in_threadpool(self.controller.decide, list(self.messages), self.persona)
            await run_in_threadpool(self._add, Message(role=Role.ASSISTANT, content=decision.next_utterance))

            if decision.should_generate_plan:
                self._plan_task = asyncio.create_task(self._generate_plan())
                self._plan_task.add_done_callback(self._log_plan_failure)
                plan_scheduled = True
            return decision
        finally:
            # The plan task releases the flag once the stage has moved on.
            if not plan_scheduled:
                self.is_loading = False

    async def _generate_plan(self) -> Plan:
        try:
            # Leave the transition message on screen for a moment.
            await asyncio.sleep(self.transition_delay)
            self.stage = FlowStage.PLAN_REVIEW
            self.is_generating_plan = True
        finally:
            self.is_loading = False

        answers = [m.content for m in self.messages if m.role == Role.USER]
        try:
            raw = await run_in_threadpool(self.coach.generate_plan, self.goal or "", answers, self.persona)
        except DelegateError as e:
            logger.warning("[Flow] Plan delegate failed for '%s': %s", self.user_id, e)
            raw = None
        except Exception as e:
            logger.error("[Flow] Unexpected plan delegate error for '%s': %s", self.user_id, e)
            raw = None

        plan = normalize_plan(raw, self.persona)
        self.plan = plan
        self.is_generating_plan = False

        if self.gateway is not None:
            try:
                await run_in_threadpool(self.gateway.save_plan, self.user_id, plan, self.persona)
            except StorageError as e:
                logger.warning("[Flow] Plan for '%s' was not saved: %s", self.user_id, e)
        return plan

    def _log_plan_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.is_generating_plan = False
            logger.error("[Flow] Plan generation for '%s' failed: %s", self.user_id, error, exc_info=error)

    async def wait_for_plan(self) -> Optional[Plan]:
        if self._plan_task is not None:
            await self._plan_task
        return self.plan

    def request_refinement(self) -> Message:
        """Go back to the conversation to adjust the plan.

        The user-turn count is not reset, so the next message regenerates the
        plan with that message as the requested adjustment.
        """
        self._require(FlowStage.PLAN_REVIEW)
        if self.is_generating_plan:
            raise FlowError("The plan is still being generated")

        self.stage = FlowStage.CONVERSATION
        prompt = Message(role=Role.ASSISTANT, content=REFINEMENT_MESSAGE)
        self._add(prompt)
        return prompt

    def accept_plan(self) -> Plan:
        self._require(FlowStage.PLAN_REVIEW)
        if self.plan is None or self.is_generating_plan:
            raise FlowError("There is no plan to accept yet")
        self.stage = FlowStage.COMPLETE
        logger.info("[Flow] User '%s' accepted plan '%s'", self.user_id, self.plan.title)
        return self.plan

    # --- Presentation helpers ---

    @property
    def progress(self) -> int:
        if self.stage == FlowStage.CONVERSATION:
            return min(40 + len(self.messages) * 5, 75)
        return {
            FlowStage.INTRO: 0,
            FlowStage.PERSONA_SELECTION: 20,
            FlowStage.PLAN_REVIEW: 80,
            FlowStage.COMPLETE: 100,
        }[self.stage]

    @property
    def suggested_responses(self) -> List[str]:
        if self.persona is None or self.stage != FlowStage.CONVERSATION:
            return []
        if count_user_turns(self.messages) > 0:
            return []
        return list(self.persona.suggestions)

    def visible_messages(self) -> List[Message]:
        return [m for m in self.messages if m.role != Role.SYSTEM]

    def _add(self, message: Message) -> None:
        self.messages.append(message)
        if self.gateway is None:
            return
        try:
            self.gateway.append_turn(self.user_id, message, goal=self.goal)
        except StorageError as e:
            logger.warning("[Flow] Turn for '%s' kept in memory only: %s", self.user_id, e)
