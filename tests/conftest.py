"""Shared fixtures: an in-memory stand-in for the Firestore client and a scripted coach."""

import copy
import threading
import uuid
from datetime import datetime

import pytest
from google.api_core.datetime_helpers import DatetimeWithNanoseconds

from goalcoach.errors import DelegateError
from goalcoach.storage import PersistenceGateway


def _as_firestore_value(value):
    """Mimic Firestore handing timestamps back as DatetimeWithNanoseconds."""
    if isinstance(value, datetime) and not isinstance(value, DatetimeWithNanoseconds):
        return DatetimeWithNanoseconds(
            value.year, value.month, value.day,
            value.hour, value.minute, value.second, value.microsecond,
            tzinfo=value.tzinfo,
        )
    if isinstance(value, dict):
        return {k: _as_firestore_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_as_firestore_value(v) for v in value]
    return value


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, db, path):
        self.db = db
        self.path = path
        self.id = path[-1]

    def get(self):
        self.db.check_available()
        return FakeSnapshot(self, self.db.docs.get(self.path))

    def set(self, data):
        self.db.check_available()
        self.db.run_before_set_hook()
        with self.db.lock:
            self.db.docs[self.path] = _as_firestore_value(copy.deepcopy(data))

    def collection(self, name):
        return FakeCollection(self.db, self.path + (name,))


class FakeQuery:
    def __init__(self, collection, field, direction, limit=None):
        self.collection = collection
        self.field = field
        self.direction = direction
        self._limit = limit

    def limit(self, count):
        return FakeQuery(self.collection, self.field, self.direction, count)

    def stream(self):
        self.collection.db.check_available()
        snapshots = self.collection.snapshots()
        snapshots.sort(key=lambda s: s.to_dict()[self.field], reverse=self.direction == "DESCENDING")
        if self._limit is not None:
            snapshots = snapshots[: self._limit]
        return iter(snapshots)


class FakeCollection:
    def __init__(self, db, path):
        self.db = db
        self.path = path

    def document(self, doc_id):
        return FakeDocument(self.db, self.path + (doc_id,))

    def add(self, data):
        ref = self.document(uuid.uuid4().hex)
        ref.set(data)
        return None, ref

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self, field, direction)

    def snapshots(self):
        depth = len(self.path) + 1
        return [
            FakeSnapshot(FakeDocument(self.db, path), data)
            for path, data in list(self.db.docs.items())
            if len(path) == depth and path[:-1] == self.path
        ]


class FakeFirestore:
    """The slice of the Firestore client API the gateway talks to."""

    def __init__(self):
        self.docs = {}
        self.lock = threading.Lock()
        self.available = True
        self._before_set = None

    def collection(self, name):
        return FakeCollection(self, (name,))

    def check_available(self):
        if not self.available:
            raise ConnectionError("firestore unavailable")

    def before_next_set(self, hook):
        """Run ``hook`` once, just before the next document write lands."""
        self._before_set = hook

    def run_before_set_hook(self):
        hook, self._before_set = self._before_set, None
        if hook is not None:
            hook()


class FakeCoach:
    """Coach delegate with canned output that records what it was asked."""

    def __init__(self, reply="Tell me more.", plan=None, fail=False):
        self.reply = reply
        self.plan = plan
        self.fail = fail
        self.reply_calls = []
        self.plan_calls = []

    def generate_reply(self, history, persona):
        self.reply_calls.append((list(history), persona))
        if self.fail:
            raise DelegateError("coach offline")
        return self.reply

    def generate_plan(self, goal, answers, persona):
        self.plan_calls.append((goal, list(answers), persona))
        if self.fail:
            raise DelegateError("coach offline")
        return self.plan

    def summarize_achievement(self, plan, persona):
        if self.fail:
            raise DelegateError("coach offline")
        return f"{persona.value} says: you finished {plan.title}."


SAMPLE_PLAN = {
    "id": "plan-42",
    "title": "Master Networking Confidence",
    "description": "Build genuine networking skills.",
    "totalDuration": 17,
    "feasibilityScore": 88,
    "steps": [
        {
            "id": "1",
            "title": "Conversation Starters",
            "description": "Practice five openers at a coffee shop.",
            "estimatedDays": 7,
            "difficulty": "easy",
            "completed": False,
        },
        {
            "id": "2",
            "title": "Professional Event Navigation",
            "description": "Attend two networking events.",
            "estimatedDays": 10,
            "difficulty": "medium",
            "completed": False,
        },
    ],
}


@pytest.fixture()
def db():
    return FakeFirestore()


@pytest.fixture()
def gateway(db):
    return PersistenceGateway(db)


@pytest.fixture()
def sample_plan_payload():
    return copy.deepcopy(SAMPLE_PLAN)


@pytest.fixture()
def coach(sample_plan_payload):
    return FakeCoach(plan=sample_plan_payload)
