"""Default values shared across complyflow modules."""

DEFAULT_CRITICAL_DAYS = 7
DEFAULT_HIGH_DAYS = 30

DEFAULT_MAX_ATTEMPTS = 3

DEFAULT_EVENT_TOPIC = "complyflow.events"

NO_PENDING_ACTION = "Awaiting completion"
WORKFLOW_FINISHED = "Workflow complete"
WORKFLOW_CANCELLED = "Workflow cancelled"
RESUBMIT_ACTION_PREFIX = "Re-submit"
