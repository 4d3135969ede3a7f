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

"""Turn-level orchestration entry point.

``DialogueOrchestrator.orchestrate`` runs one dialogue turn:

    normalise query -> fetch session context -> detect pattern
        -> execute pattern -> score -> record + predict + pre-warm

The current ``UserState`` is produced upstream (StateMonitor) and passed in.
``orchestrate`` never raises except on cancellation: capability and
classifier failures are recovered where they happen, and an unexpected
internal error produces a degraded single-pattern result.

Usage:
    orchestrator = create_orchestrator(registry)
    result = await orchestrator.orchestrate(message, state, previous, "session-1")
    if result.degraded:
        ...  # render a generic reply
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Union

from tutor_orchestrator.agent.capability_registry import CapabilityRegistry
from tutor_orchestrator.agent.intent_classifier import (
    CompletionIntentClassifier,
    KeywordIntentClassifier,
)
from tutor_orchestrator.agent.intent_router import IntentRouter
from tutor_orchestrator.agent.optimizer import Optimizer
from tutor_orchestrator.agent.pattern_detector import PatternDetector
from tutor_orchestrator.agent.pattern_executor import (
    PatternExecutionConfig,
    PatternExecutor,
    ProgressCallback,
)
from tutor_orchestrator.agent.protocols import (
    CapabilityRegistryProtocol,
    CompletionFn,
    ContextProvider,
    IntentClassifier,
    QueryNormalizer,
)
from tutor_orchestrator.agent.query_optimizer import QueryOptimizer
from tutor_orchestrator.agent.types import (
    MultiToolResult,
    OrchestrationPattern,
    PatternType,
    ResultMetadata,
    SessionContext,
    ToolExecution,
)
from tutor_orchestrator.agent.user_state import UserState
from tutor_orchestrator.config.config_loaders import ToolMatrix
from tutor_orchestrator.config.settings import OrchestratorSettings, get_settings
from tutor_orchestrator.core.errors import describe_exception
from tutor_orchestrator.core.logging_config import configure_logging_levels

logger = logging.getLogger(__name__)


def warm_context(state: UserState) -> Dict[str, str]:
    """Context the pre-warm cache is keyed on for a given state."""
    return {"intent": state.intent.current.value, "depth": state.depth.current.value}


class DialogueOrchestrator:
    """Coordinates detection, execution and optimisation for each turn."""

    def __init__(
        self,
        detector: PatternDetector,
        executor: PatternExecutor,
        optimizer: Optimizer,
        query_optimizer: Optional[QueryNormalizer] = None,
        context_provider: Optional[ContextProvider] = None,
        settings: Optional[OrchestratorSettings] = None,
    ):
        self.detector = detector
        self.executor = executor
        self.optimizer = optimizer
        self.query_optimizer = query_optimizer or QueryOptimizer()
        self.context_provider = context_provider
        self.settings = settings or get_settings()

    async def orchestrate(
        self,
        message: str,
        current_state: UserState,
        previous_state: Optional[UserState] = None,
        session_id: Optional[str] = None,
    ) -> MultiToolResult:
        """Run one dialogue turn and return everything it produced."""
        try:
            return await self._orchestrate(message, current_state, previous_state, session_id)
        except Exception as e:
            logger.exception(f"Orchestration failed for session {session_id}")
            return self._degraded_result(current_state, describe_exception(e))

    async def _orchestrate(
        self,
        message: str,
        current_state: UserState,
        previous_state: Optional[UserState],
        session_id: Optional[str],
    ) -> MultiToolResult:
        context = await self._get_context(session_id)
        query = self.query_optimizer.optimize(message, context)

        pattern = await self.detector.detect(query, current_state, previous_state)

        keyed = warm_context(current_state)
        warm = [tool for tool in pattern.tools if self.optimizer.is_warm(tool, keyed)]
        if warm:
            logger.debug(f"Pre-warmed capabilities in use: {warm}")

        result = await self.executor.execute(
            pattern,
            SessionContext(
                query=query,
                user_state=current_state,
                session_id=session_id,
                context=context,
                original_query=query,
            ),
        )

        predicted = self._update_predictions(session_id, current_state, pattern)
        self.optimizer.clear_old_cache()
        if predicted and self.settings.prewarm_predictions:
            await self.optimizer.pre_warm_tools(predicted, keyed)

        logger.debug(
            f"Turn done: pattern={pattern.type.value} tools={result.metadata.tool_count} "
            f"effectiveness={result.metadata.pattern_effectiveness}"
        )
        return replace(result, predicted_tools=tuple(predicted))

    async def _get_context(self, session_id: Optional[str]) -> Dict[str, Any]:
        if self.context_provider is None:
            return {}
        try:
            return dict(await self.context_provider.get_context(session_id))
        except Exception as e:
            logger.warning(f"Context fetch failed, continuing without: {describe_exception(e)}")
            return {}

    def _update_predictions(
        self,
        session_id: Optional[str],
        current_state: UserState,
        pattern: OrchestrationPattern,
    ) -> List[str]:
        if session_id:
            self.optimizer.record_pattern(session_id, pattern)
            return self.optimizer.predict_next_tools(session_id, current_state)
        # Anonymous turn: predict from this pattern alone, record nothing
        return self.optimizer.predict_next_tools(None, current_state, recent_history=(pattern,))

    def _degraded_result(self, state: UserState, error: str) -> MultiToolResult:
        tool = state.tooling.suggested_tool or self.detector.intent_router.default_tool
        pattern = OrchestrationPattern(
            type=PatternType.SINGLE,
            reason="Orchestration error",
            tools=(tool,),
        )
        return MultiToolResult(
            pattern=pattern,
            executions=(ToolExecution(tool=tool, success=False, error=error),),
            metadata=ResultMetadata(
                tool_count=1, total_execution_time=0, pattern_effectiveness=0.0
            ),
        )


def create_orchestrator(
    registry: Union[CapabilityRegistryProtocol, Mapping[str, Any]],
    classifier: Optional[IntentClassifier] = None,
    complete: Optional[CompletionFn] = None,
    settings: Optional[OrchestratorSettings] = None,
    tool_matrix: Optional[ToolMatrix] = None,
    context_provider: Optional[ContextProvider] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> DialogueOrchestrator:
    """Wire up an orchestrator from settings.

    Args:
        registry: capability registry, or a mapping of name -> capability
            (objects with ``execute`` or plain async callables)
        classifier: multi-intent classifier; defaults to a completion-backed
            one when ``complete`` is given, else keyword matching
        complete: async completion callable for model-backed routing
        settings: orchestrator settings (``get_settings()`` when omitted)
        tool_matrix: routing tables (loaded from YAML when omitted)
        context_provider: session context source
        progress_callback: per-invocation progress hook
    """
    settings = settings or get_settings()
    configure_logging_levels(settings.log_level, settings.log_file)

    if not isinstance(registry, CapabilityRegistryProtocol):
        capabilities = registry
        registry = CapabilityRegistry()
        for name, capability in capabilities.items():
            if hasattr(capability, "execute"):
                registry.register(name, capability)
            else:
                registry.register_function(name, capability)

    if classifier is None:
        classifier = (
            CompletionIntentClassifier(complete) if complete else KeywordIntentClassifier()
        )

    router = IntentRouter(tool_matrix=tool_matrix, complete=complete, settings=settings)
    executor = PatternExecutor(
        registry,
        PatternExecutionConfig(
            timeout_per_tool=settings.tool_timeout_seconds,
            max_concurrent=settings.max_concurrent_tools,
        ),
        progress_callback,
    )

    return DialogueOrchestrator(
        detector=PatternDetector(router, classifier, settings),
        executor=executor,
        optimizer=Optimizer(settings),
        context_provider=context_provider,
        settings=settings,
    )
