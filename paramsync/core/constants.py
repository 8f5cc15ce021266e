"""
Project constants definitions
"""

# ============================================================
# SSH Connection
# ============================================================

DEFAULT_SSH_PORT = 22
DEFAULT_SSH_TIMEOUT = 15
DEFAULT_BANNER_TIMEOUT = 15
DEFAULT_AUTH_TIMEOUT = 10
DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_RECONNECT_DELAY = 1.0

# ============================================================
# Session Monitor
# ============================================================

DEFAULT_MONITOR_INTERVAL = 30.0
MONITOR_LOCK_POLL = 0.05

# ============================================================
# Command Execution
# ============================================================

DEFAULT_IDLE_TIMEOUT = 30.0
DEFAULT_TOTAL_TIMEOUT = 120.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
CHANNEL_POLL_INTERVAL = 0.05
CHANNEL_BUFFER_SIZE = 4096
EXIT_STATUS_GRACE = 1.0

# ============================================================
# Remote Config File
# ============================================================

DEFAULT_CONFIG_PATH = "/tmp/robot_config.ini"
TEMP_SUFFIX = ".tmp."
TEMP_NAME_ATTEMPTS = 3
HEREDOC_DELIMITER_PREFIX = "PARAMSYNC_EOF_"

# Markers echoed back by probe commands
EXISTS_MARKER = "existed"
NOT_EXISTS_MARKER = "not_exist"
DECODER_MARKER = "has_base64"

# ============================================================
# Local Configuration
# ============================================================

ENV_PREFIX = "PARAMSYNC_"
