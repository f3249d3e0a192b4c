"""Turn-count driven conversation stages.

The controller never stores anything between calls. The stage is derived from
the number of user messages in the history it is given:

    1 user turn   -> ask the user to elaborate on the challenge
    2 user turns  -> ask what a successful outcome looks like
    3 user turns  -> ask what has blocked progress so far
    4+ user turns -> announce the plan and signal plan generation
"""

import logging
from typing import List

from goalcoach.models import Message, Persona, Role, StageDecision, count_user_turns
from goalcoach.prompts import (
    APOLOGY_MESSAGE,
    CONTINUE_INSTRUCTION,
    PLAN_TRANSITION_MESSAGE,
    READY_INSTRUCTION,
)

logger = logging.getLogger(__name__)

PLAN_TURN_THRESHOLD = 4


def scripted_question(persona: Persona, user_turns: int) -> str:
    """The persona's probing question for the given (1-based) user turn."""
    if user_turns <= 0:
        return persona.welcome_message
    index = min(user_turns, len(persona.questions)) - 1
    return persona.questions[index]


def decide_next(history: List[Message], persona: Persona, threshold: int = PLAN_TURN_THRESHOLD) -> StageDecision:
    """Scripted decision, a pure function of the user-turn count and persona."""
    n = count_user_turns(history)
    if n >= threshold:
        return StageDecision(next_utterance=PLAN_TRANSITION_MESSAGE, should_generate_plan=True)
    return StageDecision(next_utterance=scripted_question(persona, n), should_generate_plan=False)


class StageController:
    """Decides the next assistant move for each inbound user message.

    Without a coach delegate the replies come from the persona's scripted
    questions. With one, the same stage decision is made locally and the
    delegate only supplies the wording; a hidden system turn tells it which
    question to steer towards (or that it should announce the plan).
    """

    def __init__(self, coach=None, threshold: int = PLAN_TURN_THRESHOLD):
        self.coach = coach
        self.threshold = threshold

    def decide(self, history: List[Message], persona: Persona) -> StageDecision:
        scripted = decide_next(history, persona, self.threshold)
        if self.coach is None:
            return scripted

        n = count_user_turns(history)
        if scripted.should_generate_plan:
            instruction = READY_INSTRUCTION
        else:
            instruction = CONTINUE_INSTRUCTION.format(question=scripted_question(persona, n))

        primed = list(history) + [Message(role=Role.SYSTEM, content=instruction.strip())]

        try:
            reply = self.coach.generate_reply(primed, persona)
        except Exception as e:
            logger.warning("[Stage] Coach delegate failed on user turn %d: %s", n, e)
            return apology()

        if not isinstance(reply, str) or not reply.strip():
            logger.warning("[Stage] Coach delegate returned an unusable reply on user turn %d", n)
            return apology()

        return StageDecision(next_utterance=reply.strip(), should_generate_plan=scripted.should_generate_plan)


def apology() -> StageDecision:
    return StageDecision(next_utterance=APOLOGY_MESSAGE, should_generate_plan=False)
