STATE_DIR_NAME = ".clawhub"
CONFIG_FILE = "config.yaml"

TASKS_FILE = "tasks.yaml"
TASKS_LOCK_FILE = "tasks.lock"
AGENTS_FILE = "agents.yaml"
AGENTS_LOCK_FILE = "agents.lock"
NOTIFICATIONS_FILE = "notifications.yaml"
NOTIFICATIONS_LOCK_FILE = "notifications.lock"
ACTIVITY_FILE = "activity.jsonl"
ACTIVITY_LOCK_FILE = "activity.lock"

STORE_VERSION = 1
WINDOWS_LOCK_BYTES = 4096

DEFAULT_ROLE = "fullstack-dev"
DEV_ROLES = ("frontend-dev", "backend-dev", "fullstack-dev")

DEFAULT_STALE_AGENT_SECONDS = 300  # 5 minutes without a heartbeat
DEFAULT_NOTIFICATION_RETENTION_DAYS = 7
DEFAULT_MAX_ACTIVITY_EVENTS = 500
DEFAULT_LOG_LEVEL = "INFO"

AUTO_ASSIGN_SOURCE = "auto-assign"
