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

"""Intent routing: which capability fits an intent at a given depth.

Two layers:

1. ``select_tool_for_intent`` - a pure lookup in the intent x depth matrix
   loaded from ``tool_matrix.yaml``. Deterministic; the pattern detector and
   state monitor only use this.
2. ``route`` - full routing of a raw query. Asks a language model for the
   primary/secondary intents and depth, re-asks once when confidence is low,
   and falls back to keyword matching when the model is unavailable or
   returns garbage. Results are kept in a small LRU + TTL cache.

Usage:
    router = IntentRouter(complete=my_llm_call)
    route = await router.route("Help me draft my college essay")
    route.suggested_tool  # 'writing_assistant'
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from tutor_orchestrator.agent.protocols import CompletionFn
from tutor_orchestrator.agent.user_state import (
    EngagementDepth,
    LearningIntent,
    normalize_score,
    parse_enum,
)
from tutor_orchestrator.config.config_loaders import ToolMatrix, load_tool_matrix
from tutor_orchestrator.config.settings import OrchestratorSettings, get_settings
from tutor_orchestrator.core.errors import ClassifierError
from tutor_orchestrator.core.logging_config import trace

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_reply(text: str) -> Dict[str, Any]:
    """Parse a model reply that should hold a JSON object.

    Strips Markdown code fences first.

    Raises:
        ClassifierError: if the reply is not a JSON object
    """
    cleaned = _FENCE_PATTERN.sub("", (text or "").strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ClassifierError(
            f"Classifier reply is not valid JSON: {e}", invalid_response=True, cause=e
        ) from e
    if not isinstance(data, dict):
        raise ClassifierError("Classifier reply is not a JSON object", invalid_response=True)
    return data


ROUTER_PROMPT = """You are an intent router for an educational AI system.

Analyze the user's query and determine:
1. Primary learning intent (understand, create, solve, evaluate, organize, regulate, explore, interact)
2. Any secondary intents if present
3. Engagement depth (surface: <2min quick answer, guided: 5-15min learning, deep: 15+ min exploration)
4. Confidence level (0-1)
5. Brief reasoning for your classification

Return JSON with format:
{{
  "primaryIntent": "string",
  "secondaryIntents": ["string"],
  "depth": "surface|guided|deep",
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation"
}}

Query: "{query}"
Context: {context}"""

LOW_CONFIDENCE_NOTE = (
    "\n\nNote: The initial classification had low confidence "
    "({confidence:.2f}). Please provide a careful analysis."
)

# Ordered: the first group with a hit wins
KEYWORD_INTENTS: Tuple[Tuple[LearningIntent, Tuple[str, ...]], ...] = (
    (LearningIntent.CREATE, ("write", "create", "draft")),
    (LearningIntent.SOLVE, ("solve", "fix", "debug")),
    (LearningIntent.ORGANIZE, ("plan", "organize", "schedule")),
    (LearningIntent.EVALUATE, ("evaluate", "decide", "choose")),
    (LearningIntent.EXPLORE, ("explore", "discover", "investigate")),
    (LearningIntent.REGULATE, ("anxious", "stressed", "focus")),
    (LearningIntent.INTERACT, ("discuss", "debate", "talk")),
)
SURFACE_HINTS = ("quick", "brief", "simple")
DEEP_HINTS = ("deep", "detail", "comprehensive")

RETRIEVAL_INDICATORS = (
    "according to",
    "source",
    "citation",
    "paper",
    "study",
    "evidence",
    "who wrote",
    "when was",
    "definition from",
    "dataset",
    "reference",
)
RETRIEVAL_INTENTS = frozenset(
    {LearningIntent.EVALUATE, LearningIntent.EXPLORE, LearningIntent.CREATE}
)

KEYWORD_CONFIDENCE = 0.5


@dataclass(frozen=True)
class IntentRoute:
    """Routing decision for one query."""

    primary_intent: LearningIntent
    depth: EngagementDepth
    suggested_tool: str
    confidence: float
    needs_retrieval: bool
    source: str  # "classifier", "keyword" or "cache"
    secondary_intents: Tuple[LearningIntent, ...] = ()
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primaryIntent": self.primary_intent.value,
            "secondaryIntents": [i.value for i in self.secondary_intents],
            "depth": self.depth.value,
            "suggestedTool": self.suggested_tool,
            "confidence": self.confidence,
            "needsRetrieval": self.needs_retrieval,
            "source": self.source,
            "reasoning": self.reasoning,
        }


@dataclass
class RouterMetrics:
    total_routes: int = 0
    cache_hits: int = 0
    low_confidence_retries: int = 0
    keyword_fallbacks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        total = self.total_routes
        return {
            "totalRoutes": total,
            "cacheHits": self.cache_hits,
            "lowConfidenceRetries": self.low_confidence_retries,
            "keywordFallbacks": self.keyword_fallbacks,
            "cacheHitRate": self.cache_hits / total if total else 0.0,
            "fallbackRate": self.keyword_fallbacks / total if total else 0.0,
        }


@dataclass
class _CachedRoute:
    route: IntentRoute
    timestamp: float = field(default_factory=time.monotonic)


class IntentRouter:
    """Maps intents to capabilities and routes raw queries.

    Args:
        tool_matrix: routing tables; loaded from YAML when omitted
        complete: optional async completion callable for model routing
        settings: orchestrator settings (cache size/TTL, timeouts)
    """

    def __init__(
        self,
        tool_matrix: Optional[ToolMatrix] = None,
        complete: Optional[CompletionFn] = None,
        settings: Optional[OrchestratorSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.tool_matrix = tool_matrix or load_tool_matrix(self.settings.tool_matrix_path)
        self._complete = complete
        self._cache: OrderedDict[str, _CachedRoute] = OrderedDict()
        self.metrics = RouterMetrics()

    @property
    def default_tool(self) -> str:
        """Explicitly configured default wins over the routing table's."""
        if "default_tool" in self.settings.model_fields_set:
            return self.settings.default_tool
        return self.tool_matrix.default_tool

    def select_tool_for_intent(self, intent: Any, depth: Any) -> str:
        """Capability for an intent/depth cell, the default capability on miss."""
        intent_key = intent.value if isinstance(intent, LearningIntent) else str(intent)
        depth_key = depth.value if isinstance(depth, EngagementDepth) else str(depth)
        return self.tool_matrix.tool_for(intent_key, depth_key) or self.default_tool

    # -------------------------------------------------------------------------
    # Full routing
    # -------------------------------------------------------------------------

    async def route(self, query: str, context: Optional[Mapping[str, Any]] = None) -> IntentRoute:
        """Route a raw query to an intent, depth and capability."""
        self.metrics.total_routes += 1

        cached = self._get_cached(query)
        if cached is not None:
            self.metrics.cache_hits += 1
            return cached

        if self._complete is None:
            return self.keyword_route(query)

        try:
            route = await self._classify(query, context)
        except (asyncio.TimeoutError, ClassifierError) as e:
            self.metrics.keyword_fallbacks += 1
            logger.warning(f"Intent routing failed, using keyword route: {e}")
            return self.keyword_route(query)

        self._put_cached(query, route)
        logger.debug(
            f"Routed query to {route.primary_intent.value}/{route.depth.value} "
            f"-> {route.suggested_tool} (confidence {route.confidence:.2f})"
        )
        return route

    async def _classify(self, query: str, context: Optional[Mapping[str, Any]]) -> IntentRoute:
        prompt = ROUTER_PROMPT.format(
            query=query, context=json.dumps(dict(context or {}), default=str)
        )
        data = await self._ask(prompt)
        confidence = normalize_score(data.get("confidence", 0.7))

        if confidence < self.settings.route_confidence_threshold:
            self.metrics.low_confidence_retries += 1
            logger.debug(f"Confidence {confidence:.2f} below threshold, re-asking")
            try:
                retry = await self._ask(
                    prompt
                    + LOW_CONFIDENCE_NOTE.format(confidence=confidence)
                    + f"\nInitial classification: {json.dumps(data, default=str)}"
                )
            except (asyncio.TimeoutError, ClassifierError) as e:
                logger.warning(f"Low-confidence retry failed, keeping first answer: {e}")
            else:
                data = retry
                confidence = normalize_score(data.get("confidence", confidence))

        primary = parse_enum(LearningIntent, data.get("primaryIntent"), LearningIntent.UNDERSTAND)
        depth = parse_enum(EngagementDepth, data.get("depth"), EngagementDepth.GUIDED)
        secondary: List[LearningIntent] = []
        labels = data.get("secondaryIntents")
        if not isinstance(labels, (list, tuple)):
            # A bare string or number is not a label list
            labels = ()
        for label in labels:
            intent = parse_enum(LearningIntent, label, primary)
            if intent != primary and intent not in secondary:
                secondary.append(intent)

        return IntentRoute(
            primary_intent=primary,
            secondary_intents=tuple(secondary),
            depth=depth,
            suggested_tool=self.select_tool_for_intent(primary, depth),
            confidence=confidence,
            needs_retrieval=estimate_retrieval_need(query, primary, depth),
            source="classifier",
            reasoning=str(data.get("reasoning") or ""),
        )

    async def _ask(self, prompt: str) -> Dict[str, Any]:
        if self._complete is None:
            raise ClassifierError("No completion function configured for intent routing")
        try:
            text = await asyncio.wait_for(
                self._complete(prompt), timeout=self.settings.classifier_timeout_seconds
            )
        except (asyncio.TimeoutError, ClassifierError):
            raise
        except Exception as e:
            raise ClassifierError(f"Intent classifier call failed: {e}", cause=e) from e
        return parse_json_reply(text)

    def keyword_route(self, query: str) -> IntentRoute:
        """Cheap pattern-matching route used when no model answer is available."""
        lowered = query.lower()

        intent = LearningIntent.UNDERSTAND
        for candidate, words in KEYWORD_INTENTS:
            if any(word in lowered for word in words):
                intent = candidate
                break

        depth = EngagementDepth.GUIDED
        if any(word in lowered for word in SURFACE_HINTS):
            depth = EngagementDepth.SURFACE
        elif any(word in lowered for word in DEEP_HINTS):
            depth = EngagementDepth.DEEP

        return IntentRoute(
            primary_intent=intent,
            depth=depth,
            suggested_tool=self.select_tool_for_intent(intent, depth),
            confidence=KEYWORD_CONFIDENCE,
            needs_retrieval=estimate_retrieval_need(query, intent, depth),
            source="keyword",
            reasoning="keyword match",
        )

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def _get_cached(self, query: str) -> Optional[IntentRoute]:
        entry = self._cache.get(query)
        if entry is None:
            return None
        if time.monotonic() - entry.timestamp >= self.settings.route_cache_ttl_seconds:
            del self._cache[query]
            return None
        self._cache.move_to_end(query)
        trace(logger, "Route cache hit for %r", query)
        return replace(entry.route, source="cache")

    def _put_cached(self, query: str, route: IntentRoute) -> None:
        while len(self._cache) >= self.settings.route_cache_max_size:
            # OrderedDict: first item is least recently used
            self._cache.popitem(last=False)
        self._cache[query] = _CachedRoute(route=route)

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_metrics(self) -> Dict[str, Any]:
        """Routing counters for monitoring."""
        data = self.metrics.to_dict()
        data["cacheSize"] = len(self._cache)
        return data


def estimate_retrieval_need(query: str, intent: LearningIntent, depth: EngagementDepth) -> bool:
    """Heuristic: would this query benefit from document retrieval?"""
    lowered = (query or "").lower()
    if any(indicator in lowered for indicator in RETRIEVAL_INDICATORS):
        return True
    if depth == EngagementDepth.DEEP:
        return True
    if intent in RETRIEVAL_INTENTS:
        return depth != EngagementDepth.SURFACE
    return False
