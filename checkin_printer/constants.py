"""Constants used across the checkin-printer package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "checkin-printer"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_DAEMON_HOST = "127.0.0.1"
DEFAULT_DAEMON_PORT = 37989

# Reserved apiName the daemon uses for unsolicited print progress reports.
PUSH_API_NAME = "printStatusNotify"

# Synthetic error codes. The daemon itself only reports values >= 0.
ERROR_NOT_CONNECTED = -1
ERROR_TIMEOUT = -2
ERROR_INVALID_RESPONSE = -3

QR_CODE_TYPE = 31

DEFAULT_JOB_TIMEOUT_SECONDS = 30.0
