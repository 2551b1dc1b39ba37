from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Tuple, Union

Predicates = Dict[str, Union[bool, str]]


class VerificationLedger:
    """
    Process-local record of successful verifications, keyed by the opaque
    session id handed to the browser. Issuance correlates against it.
    Entries expire after `ttl` seconds; an expired entry reads as absent.
    """

    def __init__(self, ttl: int = 15 * 60, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Predicates]] = {}

    def record(self, session_id: str, predicates: Predicates) -> None:
        with self._lock:
            self._entries[session_id] = (self._clock() + self.ttl, dict(predicates))

    def get(self, session_id: str) -> Optional[Predicates]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            deadline, predicates = entry
            if self._clock() >= deadline:
                del self._entries[session_id]
                return None
            return dict(predicates)

    def __contains__(self, session_id: str) -> bool:
        return self.get(session_id) is not None
