"""Centralized constants"""

# Engine connection
DEFAULT_ENGINE_URL = "http://127.0.0.1:8188"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 300  # 5 minutes
MIN_REQUEST_TIMEOUT_SECONDS = 1
MAX_REQUEST_TIMEOUT_SECONDS = 3600     # 1 hour

# Polling
DEFAULT_POLL_INTERVAL_SECONDS = 10
POLL_START_DELAY_SECONDS = 5
DEFAULT_TASK_CHECK_TIMEOUT_SECONDS = 60
DEFAULT_STALE_TASK_TIMEOUT_SECONDS = 180 * 60  # 3 hours
DEFAULT_WORKER_THREADS = 4

# Retry Configuration
MAX_POLL_FAILURES = 5
MAX_OUTPUT_RETRIEVAL_ATTEMPTS = 5
INITIAL_RETRY_DELAY_SECONDS = 1
MAX_RETRY_DELAY_SECONDS = 60

# Retryable HTTP Status Codes
RETRYABLE_HTTP_STATUS_CODES = {500, 502, 503, 504, 408, 429}

# Graph document format
WORKFLOW_GRAPH_VERSION = 0.4
WORKFLOW_GRAPH_REVISION = 0
DEFAULT_NODE_SIZE = (315.0, 98.0)

# Factory inputs
PLACEHOLDER_IMAGE_NAME = "placeholder.png"
MOTION_BUCKET_MIN = 127
MOTION_BUCKET_MAX = 254
MAX_SEED = 2 ** 53 - 1
MAX_AUDIO_DURATION_SECONDS = 600
MAX_VIDEO_DURATION_SECONDS = 120
MAX_IMAGE_DIMENSION = 8192
MAX_VIDEO_FPS = 120
LATENT_DIMENSION_STEP = 8

# Task lifecycle
CANCELLED_BY_USER_MESSAGE = "Cancelled by user"

# Output storage
DEFAULT_OUTPUT_DIR = "outputs"
OUTPUT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
