"""Shared test fixtures.

Provides:
- an in-memory SQLite engine per test, with SQL backed stores
- counting in-memory stores with failure injection for orchestrator tests
- a publisher that records events instead of talking to Dapr
- a FastAPI TestClient wired to the per-test database
"""

import os
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

# Keep module level engines off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DAPR_ENABLED", "false")

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from recurring_tasks.dapr.client import DaprEventPublisher, get_publisher  # noqa: E402
from recurring_tasks.db.config import build_engine, get_session  # noqa: E402
from recurring_tasks.db.init import init_db  # noqa: E402
from recurring_tasks.main import app  # noqa: E402
from recurring_tasks.models.recurrence_rule import RecurrenceRule  # noqa: E402
from recurring_tasks.models.task import Task  # noqa: E402
from recurring_tasks.schemas.recurrence import RecurrenceRuleDraft  # noqa: E402
from recurring_tasks.schemas.task import TaskDraft, TaskTemplate, TaskUpdate  # noqa: E402
from recurring_tasks.services.errors import NotFound, StoreFailure  # noqa: E402
from recurring_tasks.services.recurring_task_service import RecurrenceOrchestrator  # noqa: E402
from recurring_tasks.services.task_store import SqlRuleStore, SqlTaskStore  # noqa: E402
from recurring_tasks.utils.metrics import MetricsCollector  # noqa: E402


def utc(*args) -> datetime:
    """Aware UTC datetime shorthand."""
    return datetime(*args, tzinfo=timezone.utc)


def parse_api_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ─────────────────────────────────────────────────────────────────────────────
# In-memory stores
# ─────────────────────────────────────────────────────────────────────────────


class _CountingStore:
    """Counts calls per method and raises configured failures."""

    def __init__(self):
        self.calls = Counter()
        self.failures: Dict[str, Exception] = {}

    def _enter(self, method: str) -> None:
        self.calls[method] += 1
        if method in self.failures:
            raise self.failures[method]

    def fail(self, method: str, error: Optional[Exception] = None) -> Exception:
        error = error or StoreFailure(f"{method} failed")
        self.failures[method] = error
        return error

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


class InMemoryTaskStore(_CountingStore):
    def __init__(self):
        super().__init__()
        self.tasks: Dict[int, Task] = {}
        self._next_id = 1

    def create_task(self, draft: TaskDraft) -> Task:
        self._enter("create_task")
        now = datetime.now(timezone.utc)
        task = Task(**draft.model_dump(), id=self._next_id, created_at=now, updated_at=now)
        self.tasks[task.id] = task
        self._next_id += 1
        return task

    def get_task(self, task_id: int) -> Task:
        self._enter("get_task")
        if task_id not in self.tasks:
            raise NotFound("Task", task_id)
        return self.tasks[task_id]

    def update_task(self, task_id: int, update: TaskUpdate) -> Task:
        self._enter("update_task")
        if task_id not in self.tasks:
            raise NotFound("Task", task_id)
        task = self.tasks[task_id]
        for field, value in update.model_dump(exclude_unset=True).items():
            setattr(task, field, value)
        return task

    def find_occurrence(self, rule_id: int, occurrence_index: int) -> Optional[Task]:
        self._enter("find_occurrence")
        for task in self.tasks.values():
            if task.recurrence_rule_id == rule_id and task.occurrence_index == occurrence_index:
                return task
        return None

    def list_occurrences(self, rule_id: int) -> List[Task]:
        self._enter("list_occurrences")
        return sorted(
            (t for t in self.tasks.values() if t.recurrence_rule_id == rule_id),
            key=lambda t: t.occurrence_index,
        )


class InMemoryRuleStore(_CountingStore):
    def __init__(self):
        super().__init__()
        self.rules: Dict[int, RecurrenceRule] = {}
        self._next_id = 1

    def create_rule(self, draft: RecurrenceRuleDraft) -> RecurrenceRule:
        self._enter("create_rule")
        rule = RecurrenceRule.from_draft(draft)
        rule.id = self._next_id
        self.rules[rule.id] = rule
        self._next_id += 1
        return rule

    def get_rule(self, rule_id: int) -> RecurrenceRule:
        self._enter("get_rule")
        if rule_id not in self.rules:
            raise NotFound("RecurrenceRule", rule_id)
        return self.rules[rule_id]

    def list_rules(self, owner_id: str) -> List[RecurrenceRule]:
        self._enter("list_rules")
        return [r for r in self.rules.values() if r.owner_id == owner_id]

    def delete_rule(self, rule_id: int) -> None:
        self._enter("delete_rule")
        if rule_id not in self.rules:
            raise NotFound("RecurrenceRule", rule_id)
        del self.rules[rule_id]


class RecordingPublisher(DaprEventPublisher):
    """Publisher that keeps events in memory."""

    def __init__(self):
        super().__init__(enabled=False)
        self.events: List[Dict[str, Any]] = []

    def publish_event(self, topic: str, event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        event_id = f"evt-{len(self.events) + 1}"
        self.events.append({"event_id": event_id, "topic": topic, "type": event_type, "data": data})
        return {"success": True, "event_id": event_id, "published": False}

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["type"] == event_type]


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_task_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def fake_rule_store() -> InMemoryRuleStore:
    return InMemoryRuleStore()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def orchestrator(fake_task_store, fake_rule_store, publisher, metrics) -> RecurrenceOrchestrator:
    return RecurrenceOrchestrator(
        task_store=fake_task_store,
        rule_store=fake_rule_store,
        publisher=publisher,
        metrics=metrics,
    )


@pytest.fixture
def template() -> TaskTemplate:
    return TaskTemplate(
        created_by="user-1",
        title="Water the plants",
        description="Balcony and kitchen",
        priority="high",
        due_date=utc(2024, 1, 1, 9, 0),
        assigned_to="user-2",
        tags=["home"],
    )


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def task_store(session) -> SqlTaskStore:
    return SqlTaskStore(session)


@pytest.fixture
def rule_store(session) -> SqlRuleStore:
    return SqlRuleStore(session)


@pytest.fixture
def client(db_engine, publisher):
    def override_get_session():
        with Session(db_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_publisher] = lambda: publisher
    yield TestClient(app)
    app.dependency_overrides.clear()
