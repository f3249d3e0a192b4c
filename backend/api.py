import logging
import time
from functools import lru_cache
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from goalcoach.config import Settings, configure_logging, load_settings
from goalcoach.errors import StorageError
from goalcoach.firebase_client import get_firestore_client
from goalcoach.llm import build_coach
from goalcoach.models import Message, Persona, Plan, Role, count_user_turns
from goalcoach.normalizer import normalize_plan
from goalcoach.render import render_plan_html
from goalcoach.stage_controller import StageController
from goalcoach.storage import PersistenceGateway

logger = logging.getLogger(__name__)


# --- Request bodies ---

class ChatRequest(BaseModel):
    user_id: str
    message: str
    goal_name: Optional[str] = None
    avatar: Persona = Persona.SKYLER


class ConversationRequest(BaseModel):
    messages: List[Message]
    avatar: Persona


class PlanRequest(BaseModel):
    goal_name: str
    user_answers: List[str] = Field(default_factory=list)
    avatar: Persona = Persona.SKYLER


class SavePlanRequest(BaseModel):
    userId: str
    plan: Plan
    avatar: Persona
    timestamp: Optional[Any] = None


class QuestionsRequest(BaseModel):
    goal_name: str
    avatar: Persona = Persona.SKYLER


class SummaryRequest(BaseModel):
    user_id: str
    plan: Optional[Plan] = None
    avatar: Optional[Persona] = None


class StepUpdate(BaseModel):
    completed: bool


# --- Dependencies (overridden in tests) ---

@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def _cached_coach():
    return build_coach(get_settings())


def get_coach():
    return _cached_coach()


def get_gateway() -> PersistenceGateway:
    return PersistenceGateway(get_firestore_client(get_settings()))


def get_controller(coach=Depends(get_coach)) -> StageController:
    return StageController(coach)


def _failure(error: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


settings = get_settings()
configure_logging(settings)

app = FastAPI(title="Goal Coach")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s in %.0fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


@app.exception_handler(RequestValidationError)
async def validation_failed(request: Request, exc: RequestValidationError):
    logger.warning("[API] Invalid request body for %s: %s", request.url.path, exc.errors())
    return _failure("Invalid request")


@app.exception_handler(StorageError)
async def storage_unavailable(request: Request, exc: StorageError):
    logger.error("[API] Storage unavailable for %s: %s", request.url.path, exc)
    return _failure("Storage unavailable")


# --- Conversation ---

@app.post("/chat")
def chat(
    payload: ChatRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
    controller: StageController = Depends(get_controller),
):
    """One conversational turn driven by the user's stored history."""
    try:
        history = gateway.load_history(payload.user_id)
    except StorageError as e:
        logger.warning("[API] No history for '%s' (store unavailable): %s", payload.user_id, e)
        history = []

    user_message = Message(role=Role.USER, content=payload.message)
    decision = controller.decide(history + [user_message], payload.avatar)
    reply = Message(role=Role.ASSISTANT, content=decision.next_utterance)

    try:
        gateway.append_turn(payload.user_id, user_message, goal=payload.goal_name)
        gateway.append_turn(payload.user_id, reply, goal=payload.goal_name)
    except StorageError as e:
        logger.error("[API] Failed to persist chat turn for '%s': %s", payload.user_id, e)
        return _failure("Failed to save conversation")

    return {"success": True, "reply": decision.next_utterance, "generatePlan": decision.should_generate_plan}


@app.get("/api/conversation/{user_id}")
def get_conversation(user_id: str, gateway: PersistenceGateway = Depends(get_gateway)):
    try:
        record = gateway.load_conversation(user_id)
        messages, goal = record.messages, record.goal
    except StorageError as e:
        logger.warning("[API] Conversation for '%s' unavailable: %s", user_id, e)
        messages, goal = [], None
    return {
        "success": True,
        "data": {
            "messages": [m.model_dump(mode="json") for m in messages if m.role != Role.SYSTEM],
            "goal": goal,
        },
    }


@app.post("/api/conversation")
def conversation(payload: ConversationRequest, controller: StageController = Depends(get_controller)):
    """Stateless turn: the client sends the whole history."""
    decision = controller.decide(payload.messages, payload.avatar)
    data = {
        "message": decision.next_utterance,
        "generatePlan": decision.should_generate_plan,
    }
    if count_user_turns(payload.messages) == 0:
        data["suggestedResponses"] = list(payload.avatar.suggestions)
    return {"success": True, "data": data}


@app.post("/ask-questions")
def ask_questions(payload: QuestionsRequest):
    return {"success": True, "questions": "\n".join(payload.avatar.questions)}


# --- Plans ---

def _generate_plan(payload: PlanRequest, coach):
    try:
        raw = coach.generate_plan(payload.goal_name, payload.user_answers, payload.avatar)
    except Exception as e:
        logger.warning("[API] Plan delegate failed, using fallback plan: %s", e)
        raw = None
    plan = normalize_plan(raw, payload.avatar)
    return {"success": True, "plan": plan.to_payload()}


@app.post("/final-plan")
def final_plan(payload: PlanRequest, coach=Depends(get_coach)):
    return _generate_plan(payload, coach)


@app.post("/api/generate-plan")
def generate_plan(payload: PlanRequest, coach=Depends(get_coach)):
    return _generate_plan(payload, coach)


@app.post("/api/save-plan")
def save_plan(payload: SavePlanRequest, gateway: PersistenceGateway = Depends(get_gateway)):
    try:
        gateway.save_plan(payload.userId, payload.plan, payload.avatar, generated_at=payload.timestamp)
    except (StorageError, ValueError) as e:
        logger.error("[API] Plan save failed for '%s': %s", payload.userId, e)
        return _failure("Failed to save plan")
    return {"success": True}


def _latest_plan_or_none(user_id: str, gateway: PersistenceGateway):
    try:
        return gateway.load_latest_plan(user_id)
    except StorageError as e:
        logger.warning("[API] Plan for '%s' unavailable: %s", user_id, e)
        return None


@app.get("/api/plan/{user_id}")
def get_plan(user_id: str, gateway: PersistenceGateway = Depends(get_gateway)):
    record = _latest_plan_or_none(user_id, gateway)
    if record is None:
        return _failure("No plan found", status_code=404)
    return {"success": True, "data": record.to_payload()}


@app.get("/api/plan/{user_id}/html")
def get_plan_html(user_id: str, gateway: PersistenceGateway = Depends(get_gateway)):
    record = _latest_plan_or_none(user_id, gateway)
    if record is None:
        return _failure("No plan found", status_code=404)
    return HTMLResponse(render_plan_html(record.plan, record.avatar))


@app.patch("/api/plan/{user_id}/steps/{step_id}")
def update_step(user_id: str, step_id: str, payload: StepUpdate, gateway: PersistenceGateway = Depends(get_gateway)):
    try:
        record = gateway.set_step_completed(user_id, step_id, payload.completed)
    except StorageError as e:
        logger.error("[API] Step update failed for '%s': %s", user_id, e)
        return _failure("Failed to update step")
    if record is None:
        return _failure("Step not found", status_code=404)
    return {"success": True, "data": record.to_payload()}


@app.post("/achievement-summary")
def achievement_summary(
    payload: SummaryRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
    coach=Depends(get_coach),
):
    persona = payload.avatar
    if payload.plan is not None:
        plan = payload.plan
    else:
        record = _latest_plan_or_none(payload.user_id, gateway)
        if record is None:
            return _failure("No plan found", status_code=404)
        plan = record.plan
        persona = persona or record.avatar
    persona = persona or Persona.SKYLER

    try:
        summary = coach.summarize_achievement(plan, persona)
    except Exception as e:
        logger.warning("[API] Summary delegate failed: %s", e)
        summary = (
            f"By completing \"{plan.title}\" over {plan.total_duration} days you will have worked through "
            f"{len(plan.steps)} focused steps. Every step is a small win - keep going!"
        )
    return {"success": True, "summary": summary}
