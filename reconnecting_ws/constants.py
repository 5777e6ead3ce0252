# =============================================================================
# reconnecting-ws -- Constants
# =============================================================================
#
# All durations are in seconds.
# =============================================================================

# -- Reconnection -------------------------------------------------------------

DEFAULT_MAX_RETRIES = 3
DEFAULT_CONNECTION_TIMEOUT = 10.0

RECONNECT_BASE_DELAY = 0.15
RECONNECT_MAX_DELAY = 10.0
RECONNECT_FACTOR = 2.0

# Wait for a native close notification after forcing a CONNECTING socket
# closed before a synthetic one is dispatched.
CLOSE_GRACE_PERIOD = 0.05

# -- WebSocket close codes -----------------------------------------------------

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006  # no close frame received (RFC 6455)
CLOSE_TIMEOUT = 3008  # private-use range 3000-4999

CLOSE_CODE_MIN_PRIVATE = 3000
CLOSE_CODE_MAX_PRIVATE = 4999
MAX_CLOSE_REASON_BYTES = 123

# -- Messages ------------------------------------------------------------------

MAX_MESSAGE_SIZE = 1_048_576  # 1 MB
