# =============================================================================
# reconnecting-ws -- Package Logger
# =============================================================================

import logging

logger = logging.getLogger("reconnecting_ws")
