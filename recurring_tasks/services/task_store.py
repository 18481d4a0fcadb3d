"""Task and recurrence rule persistence."""
from typing import List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from recurring_tasks.models.recurrence_rule import RecurrenceRule
from recurring_tasks.models.task import Task
from recurring_tasks.schemas.recurrence import RecurrenceRuleDraft
from recurring_tasks.schemas.task import TaskDraft, TaskUpdate
from recurring_tasks.services.errors import NotFound, StoreFailure
from recurring_tasks.utils.timeutils import utc_now


class TaskStore(Protocol):
    """Contract for task persistence used by the recurrence services."""

    def create_task(self, draft: TaskDraft) -> Task: ...

    def get_task(self, task_id: int) -> Task:
        """Raises ``NotFound`` for unknown ids."""
        ...

    def update_task(self, task_id: int, update: TaskUpdate) -> Task:
        """Raises ``NotFound`` for unknown ids."""
        ...

    def find_occurrence(self, rule_id: int, occurrence_index: int) -> Optional[Task]: ...

    def list_occurrences(self, rule_id: int) -> List[Task]: ...


class RuleStore(Protocol):
    """Contract for recurrence rule persistence."""

    def create_rule(self, draft: RecurrenceRuleDraft) -> RecurrenceRule: ...

    def get_rule(self, rule_id: int) -> RecurrenceRule:
        """Raises ``NotFound`` for unknown ids."""
        ...

    def list_rules(self, owner_id: str) -> List[RecurrenceRule]: ...

    def delete_rule(self, rule_id: int) -> None:
        """Raises ``NotFound`` for unknown ids."""
        ...


class SqlTaskStore:
    """Task store backed by a SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    def _commit(self, task: Task) -> Task:
        try:
            self.session.add(task)
            self.session.commit()
            self.session.refresh(task)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreFailure(f"Failed to save task: {e}") from e
        return task

    def create_task(self, draft: TaskDraft) -> Task:
        now = utc_now()
        task = Task(**draft.model_dump(), created_at=now, updated_at=now)
        return self._commit(task)

    def get_task(self, task_id: int) -> Task:
        try:
            task = self.session.get(Task, task_id)
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to load task {task_id}: {e}") from e
        if task is None:
            raise NotFound("Task", task_id)
        return task

    def update_task(self, task_id: int, update: TaskUpdate) -> Task:
        task = self.get_task(task_id)
        for field, value in update.model_dump(exclude_unset=True).items():
            setattr(task, field, value)
        task.updated_at = utc_now()
        return self._commit(task)

    def find_occurrence(self, rule_id: int, occurrence_index: int) -> Optional[Task]:
        statement = (
            select(Task)
            .where(Task.recurrence_rule_id == rule_id)
            .where(Task.occurrence_index == occurrence_index)
        )
        try:
            return self.session.exec(statement).first()
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to query occurrences of rule {rule_id}: {e}") from e

    def list_occurrences(self, rule_id: int) -> List[Task]:
        statement = (
            select(Task)
            .where(Task.recurrence_rule_id == rule_id)
            .order_by(Task.occurrence_index.asc())
        )
        try:
            return list(self.session.exec(statement).all())
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to query occurrences of rule {rule_id}: {e}") from e


class SqlRuleStore:
    """Recurrence rule store backed by a SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    def create_rule(self, draft: RecurrenceRuleDraft) -> RecurrenceRule:
        rule = RecurrenceRule.from_draft(draft)
        try:
            self.session.add(rule)
            self.session.commit()
            self.session.refresh(rule)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreFailure(f"Failed to save recurrence rule: {e}") from e
        return rule

    def get_rule(self, rule_id: int) -> RecurrenceRule:
        try:
            rule = self.session.get(RecurrenceRule, rule_id)
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to load recurrence rule {rule_id}: {e}") from e
        if rule is None:
            raise NotFound("RecurrenceRule", rule_id)
        return rule

    def list_rules(self, owner_id: str) -> List[RecurrenceRule]:
        statement = (
            select(RecurrenceRule)
            .where(RecurrenceRule.owner_id == owner_id)
            .order_by(RecurrenceRule.created_at.desc(), RecurrenceRule.id.desc())
        )
        try:
            return list(self.session.exec(statement).all())
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to list recurrence rules: {e}") from e

    def delete_rule(self, rule_id: int) -> None:
        rule = self.get_rule(rule_id)
        try:
            self.session.delete(rule)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreFailure(f"Failed to delete recurrence rule {rule_id}: {e}") from e
