import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from firebase_admin import firestore
from pydantic import ValidationError

from goalcoach.errors import StorageError
from goalcoach.models import ConversationRecord, Message, Persona, Plan, PlanRecord, utcnow

logger = logging.getLogger(__name__)

CONVERSATIONS = "conversations"
PLANS = "plans"
PLAN_HISTORY = "history"


def to_instant(value: Any) -> Optional[datetime]:
    """Turn whatever the store hands back into a plain timezone-aware datetime.

    Firestore returns ``DatetimeWithNanoseconds``; older documents may hold ISO
    strings or epoch numbers.
    """
    if value is None:
        return None
    if hasattr(value, "ToDatetime"):  # protobuf Timestamp
        value = value.ToDatetime(tzinfo=timezone.utc)
    if isinstance(value, datetime):
        return datetime(
            value.year, value.month, value.day,
            value.hour, value.minute, value.second, value.microsecond,
            tzinfo=value.tzinfo or timezone.utc,
        )
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _message_to_doc(message: Message) -> dict:
    return {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": message.timestamp,
    }


def _message_from_doc(raw: dict) -> Optional[Message]:
    try:
        data = dict(raw)
        data["timestamp"] = to_instant(data.get("timestamp"))
        return Message.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.warning("[Firebase] Skipping unreadable message %s: %s", raw.get("id"), e)
        return None


class PersistenceGateway:
    """Durable conversation and plan records, addressed by user id.

    Layout in the document store::

        conversations/{user_id}                 one record, rewritten every turn
        plans/{user_id}/history/{auto_id}        append-only, newest = current plan

    Every method raises :class:`StorageError` when the store itself fails;
    an absent document is not an error.
    """

    def __init__(self, db):
        self.db = db

    # --- Conversations ---

    def _conversation_ref(self, user_id: str):
        return self.db.collection(CONVERSATIONS).document(user_id)

    def load_conversation(self, user_id: str) -> ConversationRecord:
        try:
            snapshot = self._conversation_ref(user_id).get()
        except Exception as e:
            raise StorageError(f"Failed to load conversation for user '{user_id}'") from e

        if not snapshot.exists:
            return ConversationRecord(user_id=user_id)

        data = snapshot.to_dict() or {}
        messages = [m for m in (_message_from_doc(raw) for raw in data.get("messages", [])) if m is not None]
        return ConversationRecord(
            user_id=user_id,
            messages=messages,
            goal=data.get("goal"),
            updated_at=to_instant(data.get("updated_at")),
        )

    def load_history(self, user_id: str) -> List[Message]:
        return self.load_conversation(user_id).messages

    def append_turn(self, user_id: str, message: Message, goal: Optional[str] = None) -> ConversationRecord:
        """Append one message and rewrite the user's whole conversation document.

        Read-modify-write without a transaction: two writers for the same
        user can race and the later write drops the other's turn.
        """
        record = self.load_conversation(user_id)
        record.messages.append(message)
        if goal:
            record.goal = goal
        record.updated_at = utcnow()

        try:
            self._conversation_ref(user_id).set({
                "user_id": user_id,
                "messages": [_message_to_doc(m) for m in record.messages],
                "goal": record.goal,
                "updated_at": record.updated_at,
            })
        except Exception as e:
            raise StorageError(f"Failed to save conversation for user '{user_id}'") from e

        return record

    # --- Plans ---

    def _plan_history(self, user_id: str):
        return self.db.collection(PLANS).document(user_id).collection(PLAN_HISTORY)

    def save_plan(
        self,
        user_id: str,
        plan: Plan,
        persona: Persona,
        generated_at: Optional[datetime] = None,
    ) -> PlanRecord:
        generated_at = to_instant(generated_at) or utcnow()
        try:
            _, doc_ref = self._plan_history(user_id).add({
                "user_id": user_id,
                "plan": plan.to_payload(),
                "avatar": persona.value,
                "generated_at": generated_at,
            })
        except Exception as e:
            raise StorageError(f"Failed to save plan for user '{user_id}'") from e

        logger.info("[Firebase] Saved plan '%s' for user '%s'", plan.title, user_id)
        return PlanRecord(id=doc_ref.id, user_id=user_id, plan=plan, avatar=persona, generated_at=generated_at)

    def _latest_plan_snapshot(self, user_id: str):
        query = self._plan_history(user_id).order_by(
            "generated_at", direction=firestore.Query.DESCENDING
        ).limit(1)
        try:
            return next(iter(query.stream()), None)
        except Exception as e:
            raise StorageError(f"Failed to load plan for user '{user_id}'") from e

    @staticmethod
    def _record_from_snapshot(user_id: str, snapshot) -> PlanRecord:
        data = snapshot.to_dict() or {}
        try:
            return PlanRecord(
                id=snapshot.id,
                user_id=user_id,
                plan=Plan.model_validate(data["plan"]),
                avatar=Persona(data.get("avatar", Persona.SKYLER.value)),
                generated_at=to_instant(data.get("generated_at")),
            )
        except (KeyError, ValueError, ValidationError) as e:
            raise StorageError(f"Stored plan '{snapshot.id}' for user '{user_id}' is unreadable") from e

    def load_latest_plan(self, user_id: str) -> Optional[PlanRecord]:
        """Most recently generated plan for the user, or None if there is none."""
        snapshot = self._latest_plan_snapshot(user_id)
        if snapshot is None:
            return None
        return self._record_from_snapshot(user_id, snapshot)

    def set_step_completed(self, user_id: str, step_id: str, completed: bool) -> Optional[PlanRecord]:
        """Flip one step's ``completed`` flag on the user's current plan.

        Returns None when the user has no plan or the plan has no such step.
        """
        snapshot = self._latest_plan_snapshot(user_id)
        if snapshot is None:
            return None
        record = self._record_from_snapshot(user_id, snapshot)

        step = next((s for s in record.plan.steps if s.id == step_id), None)
        if step is None:
            return None
        step.completed = completed

        try:
            snapshot.reference.set({
                "user_id": user_id,
                "plan": record.plan.to_payload(),
                "avatar": record.avatar.value,
                "generated_at": record.generated_at,
            })
        except Exception as e:
            raise StorageError(f"Failed to update plan '{record.id}' for user '{user_id}'") from e
        return record
