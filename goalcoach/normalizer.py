import json
import logging
import re
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from goalcoach.models import Difficulty, Persona, Plan, PlanStep

logger = logging.getLogger(__name__)

DEFAULT_FEASIBILITY = 85


def default_plan(persona: Optional[Persona] = None) -> Plan:
    """Fixed fallback plan, identical for every persona."""
    return Plan(
        id="default",
        title="Social Skills Confidence Builder",
        description="A personalized plan to boost your social confidence using proven techniques",
        total_duration=30,
        feasibility_score=DEFAULT_FEASIBILITY,
        steps=[
            PlanStep(
                id="1",
                title="Foundation: Self-Assessment & Mindset",
                description="Evaluate your current social skills and establish a growth mindset. Practice daily affirmations and identify your social strengths.",
                estimated_days=7,
                difficulty=Difficulty.EASY,
            ),
            PlanStep(
                id="2",
                title="Active Listening Mastery",
                description="Master the art of genuine listening. Practice giving full attention, asking follow-up questions, and showing genuine interest in others.",
                estimated_days=10,
                difficulty=Difficulty.MEDIUM,
            ),
            PlanStep(
                id="3",
                title="Conversation Confidence",
                description="Build confidence in starting and maintaining conversations. Practice conversation starters and learn to find common ground with others.",
                estimated_days=13,
                difficulty=Difficulty.MEDIUM,
            ),
        ],
    )


def first_json_block(text: str) -> Optional[str]:
    """Return the first balanced top-level ``{...}`` block in ``text``.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    # Unbalanced: the opening brace is never closed.
    return None


def _looks_like_plan(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("title"), str)
        and isinstance(data.get("steps"), list)
        and all(isinstance(s, dict) for s in data["steps"])
    )


def _as_int(value: Any) -> Any:
    if isinstance(value, str):
        match = re.match(r"\s*(\d+)", value)
        return int(match.group(1)) if match else value
    if isinstance(value, float):
        return int(round(value))
    return value


def _unique_step_id(candidate: Any, index: int, seen: Set[str]) -> str:
    """Keep ``candidate`` if it is new, else number the step by position."""
    if candidate not in (None, "") and str(candidate) not in seen:
        return str(candidate)
    fallback = str(index + 1)
    while fallback in seen:
        fallback = f"{fallback}-{index + 1}"
    return fallback


def _normalize_steps(raw_steps: List[Dict[str, Any]]) -> List[PlanStep]:
    steps: List[PlanStep] = []
    seen: Set[str] = set()
    for index, raw in enumerate(raw_steps):
        step_data = dict(raw)  # shallow copy so we can normalize

        step_data["id"] = _unique_step_id(step_data.get("id"), index, seen)

        d = step_data.get("difficulty")
        if isinstance(d, str):
            d = d.strip().lower()
            step_data["difficulty"] = d if d in {e.value for e in Difficulty} else Difficulty.MEDIUM.value
        else:
            step_data["difficulty"] = Difficulty.MEDIUM.value

        if "estimatedDays" in step_data:
            step_data["estimatedDays"] = _as_int(step_data["estimatedDays"])

        try:
            step = PlanStep.model_validate(step_data)
        except ValidationError as step_err:
            logger.warning("[Normalizer] Dropping malformed step %d: %s", index + 1, step_err)
            continue
        if raw.get("id") not in (None, "") and str(raw["id"]) != step.id:
            logger.info("[Normalizer] Step %d reused id '%s'; renamed to '%s'", index + 1, raw["id"], step.id)
        seen.add(step.id)
        steps.append(step)
    return steps


def _coerce_plan(data: Dict[str, Any]) -> Optional[Plan]:
    steps = _normalize_steps(data["steps"])
    if not steps:
        return None

    plan_data = dict(data)
    plan_data["steps"] = steps
    if plan_data.get("id") is not None:
        plan_data["id"] = str(plan_data["id"])
    else:
        plan_data.pop("id", None)

    if "totalDuration" in plan_data:
        plan_data["totalDuration"] = _as_int(plan_data["totalDuration"])
    else:
        plan_data["totalDuration"] = sum(s.estimated_days for s in steps)

    score = _as_int(plan_data.get("feasibilityScore", DEFAULT_FEASIBILITY))
    if isinstance(score, int):
        score = max(0, min(100, score))
    plan_data["feasibilityScore"] = score

    try:
        return Plan.model_validate(plan_data)
    except ValidationError as e:
        logger.warning("[Normalizer] Plan payload failed validation: %s", e)
        return None


def normalize_plan(raw: Any, persona: Optional[Persona] = None) -> Plan:
    """Coerce an untyped plan-generation response into a Plan.

    Accepts a Plan, a plan-shaped mapping (optionally wrapped as
    ``{"plan": {...}}``) or free text containing a JSON object. Anything else
    yields :func:`default_plan`. Never raises.
    """
    if isinstance(raw, Plan):
        return raw

    try:
        data = raw
        if isinstance(data, dict) and "steps" not in data and isinstance(data.get("plan"), (dict, str)):
            data = data["plan"]

        if isinstance(data, str):
            block = first_json_block(data)
            if block is None:
                logger.info("[Normalizer] No JSON object found in plan text; using default plan")
                return default_plan(persona)
            data = json.loads(block)

        if _looks_like_plan(data):
            plan = _coerce_plan(data)
            if plan is not None:
                return plan
    except Exception as e:
        logger.warning("[Normalizer] Could not decode plan payload: %s", e)

    logger.info("[Normalizer] Falling back to default plan (persona=%s)", persona.value if persona else None)
    return default_plan(persona)
