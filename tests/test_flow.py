import asyncio
import logging

import pytest

from goalcoach.errors import FlowError
from goalcoach.flow import FlowStage, PlannerSession
from goalcoach.models import Persona, Role
from goalcoach.prompts import PLAN_TRANSITION_MESSAGE, REFINEMENT_MESSAGE
from goalcoach.stage_controller import StageController

from conftest import FakeCoach


def _session(coach, gateway=None, user_id="user_01"):
    return PlannerSession(user_id, StageController(), coach, gateway=gateway, transition_delay=0)


def _into_conversation(session, persona=Persona.RAVEN):
    session.start()
    session.select_persona(persona)
    return session.begin_conversation()


@pytest.mark.asyncio
async def test_full_flow_from_intro_to_complete(coach, gateway):
    session = _session(coach, gateway)
    assert session.stage == FlowStage.INTRO and session.progress == 0

    welcome = _into_conversation(session)
    assert welcome.content == Persona.RAVEN.welcome_message
    assert session.suggested_responses == list(Persona.RAVEN.suggestions)

    replies = []
    for text in ["I want to network better", "Confident small talk", "I freeze up", "Ready"]:
        replies.append(await session.send_message(text))

    assert [r.next_utterance for r in replies[:3]] == list(Persona.RAVEN.questions)
    assert replies[3].next_utterance == PLAN_TRANSITION_MESSAGE
    assert replies[3].should_generate_plan

    plan = await session.wait_for_plan()
    assert session.stage == FlowStage.PLAN_REVIEW
    assert session.is_generating_plan is False and session.is_loading is False
    assert len(plan.steps) >= 1 and 0 <= plan.feasibility_score <= 100

    goal, answers, persona = coach.plan_calls[-1]
    assert goal == "I want to network better"
    assert answers == ["I want to network better", "Confident small talk", "I freeze up", "Ready"]
    assert persona is Persona.RAVEN

    assert gateway.load_latest_plan("user_01").plan == plan
    assert len(gateway.load_history("user_01")) == 9

    assert session.accept_plan() == plan
    assert session.stage == FlowStage.COMPLETE and session.progress == 100


def test_conversation_needs_a_persona(coach):
    session = _session(coach)
    session.start()
    with pytest.raises(FlowError):
        session.begin_conversation()
    with pytest.raises(FlowError):
        session.start()


@pytest.mark.asyncio
async def test_second_message_rejected_while_loading(coach):
    session = _session(coach)
    _into_conversation(session)

    results = await asyncio.gather(
        session.send_message("first"),
        session.send_message("second"),
        return_exceptions=True,
    )
    assert not isinstance(results[0], Exception)
    assert isinstance(results[1], FlowError)
    assert [m.content for m in session.messages if m.role == Role.USER] == ["first"]


@pytest.mark.asyncio
async def test_plan_delegate_failure_falls_back_to_default_plan():
    session = _session(FakeCoach(fail=True))
    _into_conversation(session, Persona.PHOENIX)
    for text in ["a", "b", "c", "d"]:
        await session.send_message(text)

    plan = await session.wait_for_plan()
    assert plan.total_duration == 30 and len(plan.steps) == 3


@pytest.mark.asyncio
async def test_refinement_regenerates_on_next_message(coach):
    session = _session(coach)
    _into_conversation(session)
    for text in ["a", "b", "c", "d"]:
        await session.send_message(text)
    await session.wait_for_plan()

    prompt = session.request_refinement()
    assert prompt.content == REFINEMENT_MESSAGE
    assert session.stage == FlowStage.CONVERSATION

    decision = await session.send_message("Make it shorter")
    assert decision.should_generate_plan
    await session.wait_for_plan()
    assert session.stage == FlowStage.PLAN_REVIEW
    assert coach.plan_calls[-1][1][-1] == "Make it shorter"


@pytest.mark.asyncio
async def test_storage_outage_does_not_break_the_conversation(coach, gateway, db):
    db.available = False
    session = _session(coach, gateway)
    _into_conversation(session)
    decision = await session.send_message("hello")
    assert decision.next_utterance == Persona.RAVEN.questions[0]
    assert len(session.visible_messages()) == 3


def test_resume_picks_up_stored_conversation(coach, gateway):
    first = _session(coach, gateway)
    _into_conversation(first, Persona.SKYLER)

    resumed = PlannerSession.resume("user_01", Persona.SKYLER, StageController(), coach, gateway, transition_delay=0)
    assert resumed.stage == FlowStage.CONVERSATION
    assert [m.content for m in resumed.messages] == [Persona.SKYLER.welcome_message]

    fresh = PlannerSession.resume("new_user", Persona.PHOENIX, StageController(), coach, gateway)
    assert fresh.stage == FlowStage.CONVERSATION
    assert fresh.messages[0].content == Persona.PHOENIX.welcome_message


class _BrokenPlanStore:
    def append_turn(self, user_id, message, goal=None):
        pass

    def save_plan(self, user_id, plan, persona, generated_at=None):
        raise RuntimeError("disk on fire")


@pytest.mark.asyncio
async def test_unexpected_plan_task_failure_is_logged(coach, caplog):
    session = _session(coach, gateway=_BrokenPlanStore())
    _into_conversation(session)
    with caplog.at_level(logging.ERROR, logger="goalcoach.flow"):
        for text in ["a", "b", "c", "d"]:
            await session.send_message(text)
        await asyncio.wait([session._plan_task])
        await asyncio.sleep(0)

    assert "disk on fire" in caplog.text
    assert session.is_generating_plan is False
    assert session.is_loading is False
