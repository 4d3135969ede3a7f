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

"""Self-tuning layer: capability pre-warming and next-capability prediction.

Keeps two pieces of cross-turn state:

1. Pre-warm cache - ``(capability, context fingerprint)`` entries marking
   capabilities expected to be needed soon. Lookups through ``is_warm``
   feed a real hit rate.
2. Per-session pattern history - the last N orchestration patterns of each
   session, used to predict which capabilities come next.

Prediction Strategy:
- Flatten the session's patterns into one ordered capability sequence
- Rank capabilities that historically followed the currently suggested one
  (transition counts), then fill with overall frequency
- Return the top K, plus the suggested capability if it is missing

Thread safety: one lock for the cache, one lock per session for history,
and a registry lock guarding creation of the per-session locks.

Usage:
    optimizer = Optimizer()
    optimizer.record_pattern("session-1", pattern)
    predicted = optimizer.predict_next_tools("session-1", state)
    await optimizer.pre_warm_tools(predicted, {"intent": "understand"})
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Tuple

from tutor_orchestrator.agent.types import OrchestrationPattern
from tutor_orchestrator.agent.user_state import UserState
from tutor_orchestrator.config.settings import OrchestratorSettings, get_settings
from tutor_orchestrator.core.logging_config import trace

logger = logging.getLogger(__name__)


def context_fingerprint(context: Optional[Mapping[str, Any]]) -> str:
    """Stable short hash of a context mapping."""
    normalized = json.dumps(dict(context or {}), sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


@dataclass
class CacheEntry:
    """A pre-warmed capability."""

    tool: str
    fingerprint: str
    timestamp: float
    ready: bool = True


@dataclass(frozen=True)
class OptimizationMetrics:
    cache_size: int
    sessions_tracked: int
    total_patterns_recorded: int
    cache_hit_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cacheSize": self.cache_size,
            "sessionsTracked": self.sessions_tracked,
            "totalPatternsRecorded": self.total_patterns_recorded,
            "cacheHitRate": self.cache_hit_rate,
        }


@dataclass
class TransitionStats:
    """How often one capability followed another."""

    count: int = 0
    first_seen: int = 0


class Optimizer:
    """Pre-warm cache plus per-session pattern history.

    Args:
        settings: history bound and prediction size
        clock: seconds-based time source, injectable for tests
    """

    def __init__(
        self,
        settings: Optional[OrchestratorSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self._clock = clock

        self._cache: Dict[Tuple[str, str], CacheEntry] = {}
        self._cache_lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        self._history: Dict[str, Deque[OrchestrationPattern]] = {}
        self._session_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()
        self._total_recorded = 0

    @property
    def max_patterns_per_session(self) -> int:
        return self.settings.max_patterns_per_session

    # -------------------------------------------------------------------------
    # Pre-warm cache
    # -------------------------------------------------------------------------

    async def pre_warm_tools(
        self, tool_names: Iterable[str], context: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Mark capabilities as warm for ``context``.

        Idempotent: an existing entry is left untouched.

        Returns:
            Number of entries newly added
        """
        fingerprint = context_fingerprint(context)
        now = self._clock()
        added = 0
        with self._cache_lock:
            for tool in tool_names:
                if not tool:
                    continue
                key = (tool, fingerprint)
                if key not in self._cache:
                    self._cache[key] = CacheEntry(tool=tool, fingerprint=fingerprint, timestamp=now)
                    added += 1
            size = len(self._cache)

        if added:
            logger.info(f"Pre-warmed {added} capabilities (cache size {size})")
        return added

    def is_warm(self, tool: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        """Check (and count) whether a capability was pre-warmed for ``context``."""
        key = (tool, context_fingerprint(context))
        with self._cache_lock:
            entry = self._cache.get(key)
            hit = entry is not None and entry.ready
            if hit:
                self._hits += 1
            else:
                self._misses += 1
        trace(logger, "Pre-warm lookup %s: %s", tool, "hit" if hit else "miss")
        return hit

    def clear_old_cache(self, max_age_ms: Optional[int] = None) -> int:
        """Evict entries at least ``max_age_ms`` old; ``0`` clears everything.

        Args:
            max_age_ms: age limit, ``settings.cache_max_age_ms`` when omitted

        Returns:
            Number of entries evicted
        """
        if max_age_ms is None:
            max_age_ms = self.settings.cache_max_age_ms
        now = self._clock()
        with self._cache_lock:
            stale = [
                key
                for key, entry in self._cache.items()
                if (now - entry.timestamp) * 1000 >= max_age_ms
            ]
            for key in stale:
                del self._cache[key]

        if stale:
            logger.info(f"Evicted {len(stale)} pre-warm entries older than {max_age_ms}ms")
        return len(stale)

    # -------------------------------------------------------------------------
    # Pattern history
    # -------------------------------------------------------------------------

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._session_locks[session_id]

    def record_pattern(self, session_id: str, pattern: OrchestrationPattern) -> None:
        """Append ``pattern`` to the session's bounded history."""
        with self._session_lock(session_id):
            history = self._history.get(session_id)
            if history is None or history.maxlen != self.max_patterns_per_session:
                history = deque(history or (), maxlen=self.max_patterns_per_session)
                self._history[session_id] = history
            history.append(pattern)

        with self._registry_lock:
            self._total_recorded += 1

    def get_session_history(self, session_id: str) -> List[OrchestrationPattern]:
        """Snapshot of a session's recorded patterns, oldest first."""
        with self._registry_lock:
            lock = self._session_locks.get(session_id)
        if lock is None:
            return []
        with lock:
            return list(self._history.get(session_id, ()))

    def evict_session(self, session_id: str) -> bool:
        """Forget a session's history. Returns True if there was any."""
        with self._registry_lock:
            lock = self._session_locks.pop(session_id, None)
        if lock is None:
            return False
        with lock:
            return self._history.pop(session_id, None) is not None

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def predict_next_tools(
        self,
        session_id: Optional[str],
        current_state: UserState,
        recent_history: Iterable[OrchestrationPattern] = (),
    ) -> List[str]:
        """Capabilities likely needed next turn, most likely first."""
        history = self.get_session_history(session_id) if session_id else []
        patterns = history + list(recent_history)
        if not patterns:
            return []

        sequence = [tool for pattern in patterns for tool in pattern.tools]
        suggested = current_state.tooling.suggested_tool
        anchor = suggested or sequence[-1]

        first_seen: Dict[str, int] = {}
        for index, tool in enumerate(sequence):
            first_seen.setdefault(tool, index)

        transitions: Dict[str, TransitionStats] = {}
        for index, (prev_tool, next_tool) in enumerate(zip(sequence, sequence[1:])):
            if prev_tool != anchor:
                continue
            stats = transitions.setdefault(next_tool, TransitionStats(first_seen=index))
            stats.count += 1

        ranked = [
            tool
            for tool, _ in sorted(
                transitions.items(), key=lambda item: (-item[1].count, item[1].first_seen)
            )
        ]
        frequency = Counter(sequence)
        for tool in sorted(frequency, key=lambda t: (-frequency[t], first_seen[t])):
            if tool not in ranked:
                ranked.append(tool)

        predicted = ranked[: self.settings.prediction_top_k]
        if suggested and suggested not in predicted:
            predicted.append(suggested)

        logger.debug(f"Predicted next capabilities for {session_id}: {predicted}")
        return predicted

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def get_optimization_metrics(self) -> OptimizationMetrics:
        with self._cache_lock:
            cache_size = len(self._cache)
            lookups = self._hits + self._misses
            hit_rate = self._hits / lookups if lookups else 0.0
        with self._registry_lock:
            sessions = len(self._history)
            total = self._total_recorded

        return OptimizationMetrics(
            cache_size=cache_size,
            sessions_tracked=sessions,
            total_patterns_recorded=total,
            cache_hit_rate=hit_rate,
        )
