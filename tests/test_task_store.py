"""Tests for the SQLModel backed task and rule stores."""

from datetime import timedelta

import pytest

from recurring_tasks.models.recurrence_rule import RecurrenceRule
from recurring_tasks.schemas.recurrence import (
    AfterCount,
    NeverEnds,
    RecurrenceOptions,
    RecurrenceRuleDraft,
    SeriesEnded,
    UntilDate,
)
from recurring_tasks.schemas.task import TaskDraft, TaskUpdate
from recurring_tasks.services.errors import InvalidRule, NotFound, StoreFailure
from recurring_tasks.services.recurring_task_service import RecurrenceOrchestrator
from tests.conftest import utc


def draft(**overrides) -> TaskDraft:
    values = {"created_by": "user-1", "title": "Pay rent", "due_date": utc(2024, 1, 31, 12, 0)}
    values.update(overrides)
    return TaskDraft(**values)


def rule_draft(end_condition=None, owner_id="user-1") -> RecurrenceRuleDraft:
    return RecurrenceRuleDraft(
        type="monthly",
        frequency=1,
        end_condition=end_condition or NeverEnds(),
        owner_id=owner_id,
        series_template_task_id=1,
    )


class TestSqlTaskStore:
    def test_create_and_get(self, task_store):
        created = task_store.create_task(draft(tags=["bills"]))

        loaded = task_store.get_task(created.id)
        assert loaded.id is not None
        assert loaded.title == "Pay rent"
        assert loaded.status == "todo"
        assert loaded.tags == ["bills"]
        assert loaded.reminder_ids == []

    def test_datetimes_come_back_aware(self, task_store, session):
        created = task_store.create_task(draft())
        session.expire_all()

        loaded = task_store.get_task(created.id)
        assert loaded.due_date == utc(2024, 1, 31, 12, 0)
        assert loaded.due_date.utcoffset() == timedelta(0)
        assert loaded.created_at.tzinfo is not None

    def test_get_unknown_task(self, task_store):
        with pytest.raises(NotFound):
            task_store.get_task(404)

    def test_update_applies_only_set_fields(self, task_store):
        created = task_store.create_task(draft(assigned_to="user-2"))

        updated = task_store.update_task(created.id, TaskUpdate(status="completed", assigned_to=None))

        assert updated.status == "completed"
        assert updated.assigned_to is None
        assert updated.title == "Pay rent"
        assert updated.due_date == utc(2024, 1, 31, 12, 0)

    def test_update_unknown_task(self, task_store):
        with pytest.raises(NotFound):
            task_store.update_task(404, TaskUpdate(status="completed"))

    def test_find_and_list_occurrences(self, task_store):
        task_store.create_task(draft(recurrence_rule_id=7, occurrence_index=2))
        task_store.create_task(draft(recurrence_rule_id=7, occurrence_index=1))
        task_store.create_task(draft(recurrence_rule_id=8, occurrence_index=1))

        assert task_store.find_occurrence(7, 2).occurrence_index == 2
        assert task_store.find_occurrence(7, 3) is None
        assert [t.occurrence_index for t in task_store.list_occurrences(7)] == [1, 2]

    def test_one_task_per_series_position(self, task_store):
        task_store.create_task(draft(recurrence_rule_id=7, occurrence_index=2))

        with pytest.raises(StoreFailure):
            task_store.create_task(draft(recurrence_rule_id=7, occurrence_index=2))

        # The session is usable after the rollback
        assert len(task_store.list_occurrences(7)) == 1

    def test_plain_tasks_share_null_position(self, task_store):
        task_store.create_task(draft())
        task_store.create_task(draft())
        assert task_store.get_task(2).recurrence_rule_id is None


class TestSqlRuleStore:
    @pytest.mark.parametrize(
        "end_condition",
        [NeverEnds(), AfterCount(count=6), UntilDate(until=utc(2024, 12, 31, 23, 0))],
    )
    def test_end_condition_survives_reload(self, rule_store, session, end_condition):
        created = rule_store.create_rule(rule_draft(end_condition))
        session.expire_all()

        assert rule_store.get_rule(created.id).end_condition == end_condition

    def test_get_unknown_rule(self, rule_store):
        with pytest.raises(NotFound):
            rule_store.get_rule(404)

    def test_list_rules_newest_first(self, rule_store):
        first = rule_store.create_rule(rule_draft())
        second = rule_store.create_rule(rule_draft())
        rule_store.create_rule(rule_draft(owner_id="user-2"))

        assert [r.id for r in rule_store.list_rules("user-1")] == [second.id, first.id]

    def test_delete_rule(self, rule_store):
        created = rule_store.create_rule(rule_draft())

        rule_store.delete_rule(created.id)

        with pytest.raises(NotFound):
            rule_store.get_rule(created.id)
        with pytest.raises(NotFound):
            rule_store.delete_rule(created.id)

    def test_incomplete_stored_end_condition(self, session, rule_store):
        row = RecurrenceRule(type="daily", frequency=1, end_type="count", owner_id="user-1", series_template_task_id=1)
        session.add(row)
        session.commit()

        with pytest.raises(InvalidRule):
            rule_store.get_rule(row.id).end_condition


class TestOrchestratorOnDatabase:
    def test_monthly_series_end_to_end(self, task_store, rule_store, template):
        orchestrator = RecurrenceOrchestrator(task_store, rule_store)
        template = template.model_copy(update={"due_date": utc(2024, 1, 31, 9, 0)})
        started = orchestrator.start_series(
            template, RecurrenceOptions(type="monthly", end_condition=AfterCount(count=3))
        )

        second = orchestrator.complete_occurrence(started.first_task_id).next_occurrence
        third = orchestrator.complete_occurrence(second.id).next_occurrence
        last = orchestrator.complete_occurrence(third.id)

        assert second.due_date == utc(2024, 2, 29, 9, 0)
        assert third.due_date == utc(2024, 3, 29, 9, 0)
        assert last.outcome == SeriesEnded(rule_id=started.rule_id, last_occurrence_index=3)

        occurrences = orchestrator.get_series_occurrences(started.rule_id)
        assert [t.occurrence_index for t in occurrences] == [1, 2, 3]
        assert all(t.status == "completed" for t in occurrences)

    def test_repeated_completion_is_idempotent(self, task_store, rule_store, template):
        orchestrator = RecurrenceOrchestrator(task_store, rule_store)
        started = orchestrator.start_series(template, RecurrenceOptions(type="daily"))

        a = orchestrator.complete_occurrence(started.first_task_id)
        b = orchestrator.complete_occurrence(started.first_task_id)

        assert a.next_occurrence.id == b.next_occurrence.id
        assert len(orchestrator.get_series_occurrences(started.rule_id)) == 2

    def test_end_series_keeps_tasks(self, task_store, rule_store, template):
        orchestrator = RecurrenceOrchestrator(task_store, rule_store)
        started = orchestrator.start_series(template, RecurrenceOptions(type="weekly"))

        orchestrator.end_series(started.rule_id)

        task = task_store.get_task(started.first_task_id)
        assert task.recurrence_rule_id is None
        assert orchestrator.list_series("user-1") == []
