"""Runtime configuration for the recurring tasks service."""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# Dapr pub/sub
DAPR_ENABLED = _env_flag("DAPR_ENABLED")
DAPR_PUBSUB_NAME = os.environ.get("DAPR_PUBSUB_NAME", "task-pubsub")
TASK_EVENTS_TOPIC = os.environ.get("TASK_EVENTS_TOPIC", "task-events")
REMINDER_TOPIC = os.environ.get("REMINDER_TOPIC", "reminders")
EVENT_SOURCE = os.environ.get("EVENT_SOURCE", "recurring-tasks-api")

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Recurrence
PREVIEW_MAX_OCCURRENCES = int(os.environ.get("PREVIEW_MAX_OCCURRENCES", "50"))
DEFAULT_REMINDER_MINUTES = int(os.environ.get("DEFAULT_REMINDER_MINUTES", "60"))
