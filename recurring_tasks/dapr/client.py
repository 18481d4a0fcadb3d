"""Dapr client for publishing recurrence and reminder events."""
import json
import uuid
from typing import Any, Dict, Optional

from dapr.clients import DaprClient

from recurring_tasks import config
from recurring_tasks.utils.logger import get_logger
from recurring_tasks.utils.timeutils import utc_now

logger = get_logger(__name__)


class DaprEventPublisher:
    """Publishes events to a pub/sub component via the Dapr sidecar.

    With publishing disabled (local development, tests) events are only
    logged; callers still receive an event id.
    """

    def __init__(
        self,
        enabled: bool = config.DAPR_ENABLED,
        pubsub_name: str = config.DAPR_PUBSUB_NAME,
        source: str = config.EVENT_SOURCE,
    ):
        self.enabled = enabled
        self.pubsub_name = pubsub_name
        self.source = source
        if not self.enabled:
            logger.warning("Dapr publishing disabled; events will only be logged")

    def publish_event(self, topic: str, event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Publish an event envelope to ``topic``."""
        event_envelope = {
            "event_id": str(uuid.uuid4()),
            "type": event_type,
            "timestamp": utc_now().isoformat(),
            "source": self.source,
            "data": data,
        }

        if not self.enabled:
            logger.info("Event not published (dev mode)", topic=topic, event=event_envelope)
            return {"success": True, "event_id": event_envelope["event_id"], "published": False}

        try:
            with DaprClient() as client:
                client.publish_event(
                    pubsub_name=self.pubsub_name,
                    topic_name=topic,
                    data=json.dumps(event_envelope, default=str),
                    data_content_type="application/json",
                )
        except Exception as e:
            logger.error("Failed to publish event", topic=topic, event_type=event_type, error=str(e))
            raise

        logger.info("Published event", topic=topic, event_type=event_type, event_id=event_envelope["event_id"])
        return {"success": True, "event_id": event_envelope["event_id"], "published": True}

    def publish_task_created(self, task_data: Dict[str, Any]):
        return self.publish_event(config.TASK_EVENTS_TOPIC, "task.created", task_data)

    def publish_task_completed(self, task_data: Dict[str, Any]):
        return self.publish_event(config.TASK_EVENTS_TOPIC, "task.completed", task_data)

    def publish_series_ended(self, series_data: Dict[str, Any]):
        return self.publish_event(config.TASK_EVENTS_TOPIC, "recurrence.ended", series_data)

    def publish_reminder_scheduled(self, reminder_data: Dict[str, Any]):
        return self.publish_event(config.REMINDER_TOPIC, "reminder.scheduled", reminder_data)

    def publish_reminder_cancelled(self, reminder_data: Dict[str, Any]):
        return self.publish_event(config.REMINDER_TOPIC, "reminder.cancelled", reminder_data)


_publisher: Optional[DaprEventPublisher] = None


def get_publisher() -> DaprEventPublisher:
    """FastAPI dependency returning the process-wide publisher."""
    global _publisher
    if _publisher is None:
        _publisher = DaprEventPublisher()
    return _publisher
