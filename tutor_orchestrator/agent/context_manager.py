# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""In-memory session context provider.

Implements ``ContextProvider`` for callers without a transcript store.
``get_context`` returns a snapshot; it never mutates session state.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

# Last three exchanges
DEFAULT_MAX_TURNS = 6


class InMemoryContextManager:
    """Bounded per-session turn buffer."""

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS):
        if max_turns < 1:
            raise ValueError(f"max_turns must be >= 1, got {max_turns}")
        self.max_turns = max_turns
        self._turns: Dict[str, Deque[Dict[str, str]]] = {}
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def append_turn(self, session_id: str, role: str, content: str) -> None:
        with self._lock:
            turns = self._turns.setdefault(session_id, deque(maxlen=self.max_turns))
            turns.append({"role": role, "content": content})
            self._counts[session_id] = self._counts.get(session_id, 0) + 1

    async def get_context(self, session_id: Optional[str]) -> Dict[str, Any]:
        """Snapshot of recent turns; empty for unknown or missing sessions."""
        if not session_id:
            return {"recentTurns": [], "turnCount": 0}
        with self._lock:
            recent: List[Dict[str, str]] = [dict(t) for t in self._turns.get(session_id, ())]
            count = self._counts.get(session_id, 0)
        return {"recentTurns": recent, "turnCount": count}

    def clear_session(self, session_id: str) -> None:
        with self._lock:
            self._turns.pop(session_id, None)
            self._counts.pop(session_id, None)
        logger.debug(f"Cleared context for session {session_id}")
