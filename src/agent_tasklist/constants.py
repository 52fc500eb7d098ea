DEFAULT_BASE_DIR_PARTS = (".claude", "tasks")
BASE_DIR_ENV = "AGENT_TASKLIST_DIR"
LIST_ID_ENV = "AGENT_TASKLIST_LIST_ID"
DEFAULT_LIST_ID = "default"

CONFIG_FILE = "config.yaml"
TASK_FILE_SUFFIX = ".json"
LOCK_FILE_SUFFIX = ".lock"
LIST_LOCK_FILE = ".lock"
HIGHWATERMARK_FILE = ".highwatermark"
TMP_SUFFIX = ".tmp"

DEFAULT_LOCK_TIMEOUT = None  # wait until acquired or cancelled
DEFAULT_LOCK_POLL_INTERVAL = 0.05  # seconds
DEFAULT_SUBSCRIBER_BUFFER = 16
DEFAULT_CLAIM_MAX_ATTEMPTS = 5
DEFAULT_ID_CONFLICT_RETRIES = 10
