"""Reminder Scheduler Service."""
from datetime import datetime, timedelta
from typing import Optional

from recurring_tasks import config
from recurring_tasks.dapr.client import DaprEventPublisher
from recurring_tasks.models.task import Task
from recurring_tasks.schemas.task import ReminderOffset
from recurring_tasks.utils.logger import get_logger
from recurring_tasks.utils.timeutils import ensure_utc, utc_now

logger = get_logger(__name__)


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def _offset_phrase(offset: ReminderOffset) -> str:
    parts = []
    if offset.days:
        parts.append(_plural(offset.days, "day"))
    if offset.hours:
        parts.append(_plural(offset.hours, "hour"))
    if offset.minutes:
        parts.append(_plural(offset.minutes, "minute"))
    return " ".join(parts)


class ReminderScheduler:
    """Schedules task reminders relative to due dates.

    Delivery belongs to whatever consumes the reminder topic; this service
    only computes fire times and publishes schedule/cancel events.
    """

    def __init__(self, publisher: DaprEventPublisher):
        self.publisher = publisher

    @staticmethod
    def reminder_time(due_date: datetime, offset: ReminderOffset) -> datetime:
        """Absolute fire time of a reminder ``offset`` before ``due_date``."""
        return ensure_utc(due_date) - timedelta(
            days=offset.days, hours=offset.hours, minutes=offset.minutes
        )

    @staticmethod
    def describe_offset(offset: ReminderOffset) -> str:
        """Human readable offset, e.g. ``1 day 2 hours before`` or ``now``."""
        if offset.is_at_event_time:
            return "now"
        return _offset_phrase(offset) + " before"

    def schedule_reminder(
        self, task: Task, offset: ReminderOffset, now: Optional[datetime] = None
    ) -> Optional[str]:
        """
        Schedule a reminder for a task.

        Args:
            task: Task with a due date
            offset: Time before the due date at which to fire
            now: Reference time, defaults to the current time

        Returns:
            Reminder identifier, or None when the task has no due date, the
            fire time is not in the future or publishing failed
        """
        if task.due_date is None:
            return None

        fire_at = self.reminder_time(task.due_date, offset)
        now = ensure_utc(now) if now is not None else utc_now()
        if fire_at <= now:
            logger.debug("Reminder time already passed", task_id=task.id, fire_at=fire_at)
            return None

        description = self.describe_offset(offset)
        if offset.is_at_event_time:
            body = f'"{task.title}" is due now'
        else:
            body = f'"{task.title}" is due in {_offset_phrase(offset)}'

        try:
            result = self.publisher.publish_reminder_scheduled({
                "task_id": task.id,
                "user_id": task.assigned_to or task.created_by,
                "title": "Task Reminder",
                "body": body,
                "fire_at": fire_at.isoformat(),
                "due_date": ensure_utc(task.due_date).isoformat(),
            })
        except Exception as e:
            logger.error("Failed to schedule reminder", task_id=task.id, error=str(e))
            return None

        logger.info("Scheduled reminder", task_id=task.id, fire_at=fire_at, offset=description)
        return result["event_id"]

    def schedule_default_reminder(self, task: Task, now: Optional[datetime] = None) -> Optional[str]:
        """Schedule the standard reminder shortly before the due date."""
        offset = ReminderOffset(minutes=config.DEFAULT_REMINDER_MINUTES)
        return self.schedule_reminder(task, offset, now=now)

    def cancel_reminder(self, identifier: str) -> bool:
        """Publish a cancellation. Returns False when publishing failed."""
        try:
            self.publisher.publish_reminder_cancelled({"reminder_id": identifier})
        except Exception as e:
            logger.error("Failed to cancel reminder", reminder_id=identifier, error=str(e))
            return False

        logger.info("Cancelled reminder", reminder_id=identifier)
        return True
