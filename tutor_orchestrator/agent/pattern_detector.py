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

"""Orchestration pattern detection.

Decides, for one turn, which of the five patterns to run and which
capabilities it involves. Rules are checked in a fixed order and the first
match wins:

1. handoff  - the learner's intent changed (with a stated reason)
2. chain    - engagement depth moved forward since the previous turn
3. fallback - frustration at or above the configured threshold
4. parallel - the message carries two or more independent intents
5. single   - everything else

The decision is deterministic for identical inputs as long as the injected
multi-intent classifier is. Classifier failures and timeouts are treated as
"no parallel intents"; they are logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from tutor_orchestrator.agent.intent_classifier import VALID_INTENTS
from tutor_orchestrator.agent.intent_router import IntentRouter
from tutor_orchestrator.agent.protocols import IntentClassifier
from tutor_orchestrator.agent.types import OrchestrationPattern, PatternType, tools_tuple
from tutor_orchestrator.agent.user_state import UserState, depth_stages
from tutor_orchestrator.config.settings import OrchestratorSettings, get_settings
from tutor_orchestrator.core.errors import describe_exception

logger = logging.getLogger(__name__)

# Chains shorter than this are padded with the default capability
MIN_CHAIN_LENGTH = 2


class PatternDetector:
    """Chooses an orchestration pattern from current/previous user state.

    Args:
        intent_router: supplies intent x depth lookups and progression tables
        classifier: optional multi-intent classifier; without one the
            parallel pattern is never chosen
        settings: frustration threshold, fallback tools, classifier timeout
    """

    def __init__(
        self,
        intent_router: IntentRouter,
        classifier: Optional[IntentClassifier] = None,
        settings: Optional[OrchestratorSettings] = None,
    ):
        self.intent_router = intent_router
        self.classifier = classifier
        self.settings = settings or get_settings()

    @property
    def fallback_tools(self) -> tuple:
        """Explicitly configured fallback list wins over the routing table's."""
        if "fallback_tools" in self.settings.model_fields_set:
            return tuple(self.settings.fallback_tools)
        return self.intent_router.tool_matrix.fallback_tools or tuple(self.settings.fallback_tools)

    async def detect(
        self,
        message: str,
        current_state: UserState,
        previous_state: Optional[UserState] = None,
    ) -> OrchestrationPattern:
        """Pick the pattern for this turn."""
        pattern = (
            self._detect_handoff(current_state, previous_state)
            or self._detect_chain(current_state, previous_state)
            or self._detect_fallback(current_state)
            or await self._detect_parallel(message, current_state)
            or self._single(current_state)
        )
        logger.debug(f"Pattern {pattern.type.value}: {pattern.reason} -> {list(pattern.tools)}")
        return pattern

    def _suggested_tool(self, state: UserState) -> str:
        return state.tooling.suggested_tool or self.intent_router.default_tool

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def _detect_handoff(
        self, current: UserState, previous: Optional[UserState]
    ) -> Optional[OrchestrationPattern]:
        if not (current.intent.changed and current.intent.change_reason.strip()):
            return None

        context = {}
        if previous is not None:
            context = {
                "previousIntent": previous.intent.current.value,
                "newIntent": current.intent.current.value,
                "depthChange": previous.depth.current != current.depth.current,
            }
            previous_tool = (
                previous.tooling.current_tool_appropriate or previous.tooling.suggested_tool
            )
            if previous_tool:
                context["previousTool"] = previous_tool

        return OrchestrationPattern(
            type=PatternType.HANDOFF,
            reason=current.intent.change_reason,
            tools=(self._suggested_tool(current),),
            context=context,
        )

    def _detect_chain(
        self, current: UserState, previous: Optional[UserState]
    ) -> Optional[OrchestrationPattern]:
        if previous is None or not current.depth.change_indicator:
            return None
        if not current.progressed_from(previous):
            return None

        from_depth = previous.depth.current
        to_depth = current.depth.current
        intent = current.intent.current
        tools = self.progression_tools(intent.value, from_depth, to_depth)

        return OrchestrationPattern(
            type=PatternType.CHAIN,
            reason="Depth progression detected",
            tools=tools,
            context={
                "fromDepth": from_depth.value,
                "toDepth": to_depth.value,
                "intent": intent.value,
            },
        )

    def progression_tools(self, intent: str, from_depth, to_depth) -> tuple:
        """Ordered capabilities for each stage of a forward depth move."""
        tabulated = self.intent_router.tool_matrix.progression_for(
            from_depth.value, to_depth.value, intent
        )
        if tabulated:
            tools = list(tools_tuple(tabulated))
        else:
            tools = list(
                tools_tuple(
                    [
                        self.intent_router.select_tool_for_intent(intent, stage)
                        for stage in depth_stages(from_depth, to_depth)
                    ]
                )
            )

        default_tool = self.intent_router.default_tool
        while len(tools) < MIN_CHAIN_LENGTH:
            # Distinct stages can collapse onto one capability (e.g. plan_manager)
            tools.append(default_tool if default_tool not in tools else tools[-1])
        return tuple(tools)

    def _detect_fallback(self, current: UserState) -> Optional[OrchestrationPattern]:
        frustration = current.sentiment.frustration_level
        if frustration < self.settings.frustration_threshold:
            return None

        return OrchestrationPattern(
            type=PatternType.FALLBACK,
            reason="High frustration detected",
            tools=self.fallback_tools,
            context={
                "frustrationLevel": frustration,
                "sentiment": current.sentiment.type.value,
            },
        )

    async def _detect_parallel(
        self, message: str, current: UserState
    ) -> Optional[OrchestrationPattern]:
        intents = await self.detect_intents(message)
        if len(intents) < 2:
            return None

        depth = current.depth.current
        return OrchestrationPattern(
            type=PatternType.PARALLEL,
            reason="Multiple intents detected",
            tools=tuple(self.intent_router.select_tool_for_intent(i, depth) for i in intents),
            context={"intents": tuple(intents), "depth": depth.value},
        )

    async def detect_intents(self, message: str) -> List[str]:
        """Distinct recognised intents in ``message``; empty on any failure."""
        if self.classifier is None or not message.strip():
            return []

        try:
            raw = await asyncio.wait_for(
                self.classifier.detect_intents(message),
                timeout=self.settings.classifier_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Multi-intent classifier timed out after "
                f"{self.settings.classifier_timeout_seconds}s"
            )
            return []
        except Exception as e:
            logger.warning(f"Multi-intent classifier failed: {describe_exception(e)}")
            return []

        intents: List[str] = []
        for label in raw or []:
            label = str(label).strip().lower()
            if label in VALID_INTENTS and label not in intents:
                intents.append(label)
        return intents

    def _single(self, current: UserState) -> OrchestrationPattern:
        return OrchestrationPattern(
            type=PatternType.SINGLE,
            reason="Standard single tool execution",
            tools=(self._suggested_tool(current),),
        )
