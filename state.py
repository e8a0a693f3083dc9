from __future__ import annotations

import random
import string
from typing import Dict, TYPE_CHECKING

# Only for type hints to avoid circular imports at runtime
if TYPE_CHECKING:
    from domain.engine import TradeEngine

# ---- Sessions ----
sessions: Dict[str, "TradeEngine"] = {}            # sessionId -> engine


# ---- ID generators ----
def gen_session_id() -> str:
    """Generate a short opaque session id, e.g. 'k8z2q1m9d0'."""
    while True:
        sid = "".join(random.choices(string.ascii_lowercase + string.digits, k=10))
        if sid not in sessions:
            return sid
