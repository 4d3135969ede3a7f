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

"""Execution of orchestration patterns against the capability registry.

Design Principles:
- Every invocation is isolated: unknown names, exceptions, failure replies
  and timeouts become failed ``ToolExecution`` entries, never raised errors
- Parallel fan-out waits for every sibling (no short-circuit) and keeps
  results in ``tools`` order
- Chain stages run strictly in order, each seeing the previous output
- Fallback stops at the first success
- Cancellation of the calling task is never swallowed
- Progress callbacks for streaming updates
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from tutor_orchestrator.agent.capability_registry import normalize_response
from tutor_orchestrator.agent.effectiveness import score_pattern
from tutor_orchestrator.agent.protocols import CapabilityRegistryProtocol
from tutor_orchestrator.agent.types import (
    CapabilityInput,
    MultiToolResult,
    OrchestrationPattern,
    PatternType,
    ResultMetadata,
    SessionContext,
    ToolExecution,
)
from tutor_orchestrator.config.timeouts import Timeouts
from tutor_orchestrator.core.errors import (
    CapabilityExecutionError,
    CapabilityTimeoutError,
    describe_exception,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str, bool], None]

# Characters of the previous stage's output quoted into the next chain query
CHAIN_EXCERPT_CHARS = 100


@dataclass
class PatternExecutionConfig:
    timeout_per_tool: float = Timeouts.CAPABILITY_DEFAULT
    max_concurrent: int = 5


def chain_query(previous_response: str, original_query: str) -> str:
    """Next-stage query built from the previous stage's output."""
    excerpt = previous_response[:CHAIN_EXCERPT_CHARS]
    return f"Based on: {excerpt}... Continue with: {original_query}"


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _caller_cancelled() -> bool:
    """True when the running task itself has a pending cancellation request.

    ``Task.cancelling`` only exists on Python 3.11+; older interpreters cannot
    tell the two apart, so every ``CancelledError`` is treated as the caller's.
    """
    task = asyncio.current_task()
    cancelling = getattr(task, "cancelling", None)
    if cancelling is None:
        return True
    return cancelling() > 0


class PatternExecutor:
    """Runs an ``OrchestrationPattern`` and assembles a ``MultiToolResult``.

    Args:
        registry: resolves capability names to handles
        config: per-invocation timeout and parallel concurrency limit
        progress_callback: optional ``(tool, status, success)`` hook; status is
            one of ``started``, ``completed``, ``timeout``, ``error``
    """

    def __init__(
        self,
        registry: CapabilityRegistryProtocol,
        config: Optional[PatternExecutionConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.registry = registry
        self.config = config or PatternExecutionConfig()
        self.progress_callback = progress_callback

    async def execute(
        self, pattern: OrchestrationPattern, session: SessionContext
    ) -> MultiToolResult:
        """Execute ``pattern`` for one turn."""
        start_time = time.perf_counter()

        if pattern.type == PatternType.CHAIN:
            executions = await self._execute_chain(pattern, session)
        elif pattern.type == PatternType.PARALLEL:
            executions = await self._execute_parallel(pattern, session)
        elif pattern.type == PatternType.FALLBACK:
            executions = await self._execute_fallback(pattern, session)
        else:
            executions = await self._execute_one(pattern, session)

        effectiveness = score_pattern(pattern, executions)
        failed = sum(1 for e in executions if not e.success)
        if failed:
            logger.debug(
                f"{pattern.type.value} pattern: {failed}/{len(executions)} invocations failed"
            )

        return MultiToolResult(
            pattern=pattern,
            executions=tuple(executions),
            final_response=combine_responses(pattern, executions),
            metadata=ResultMetadata(
                tool_count=len(executions),
                total_execution_time=_elapsed_ms(start_time),
                pattern_effectiveness=effectiveness,
            ),
        )

    # -------------------------------------------------------------------------
    # Pattern strategies
    # -------------------------------------------------------------------------

    def _base_context(self, pattern: OrchestrationPattern, session: SessionContext) -> Dict[str, Any]:
        context = dict(session.context)
        context.update(pattern.context)
        return context

    async def _execute_one(
        self, pattern: OrchestrationPattern, session: SessionContext
    ) -> List[ToolExecution]:
        """single and handoff: exactly one invocation."""
        tool_name = pattern.tools[0]
        context = self._base_context(pattern, session)
        if pattern.type == PatternType.HANDOFF and pattern.context.get("previousTool"):
            context["transitionMessage"] = (
                f"Transitioning from {pattern.context['previousTool']} to {tool_name} "
                f"due to {pattern.reason}"
            )
        return [await self._execute_single(tool_name, session.query, context, session)]

    async def _execute_chain(
        self, pattern: OrchestrationPattern, session: SessionContext
    ) -> List[ToolExecution]:
        executions: List[ToolExecution] = []
        original_query = session.original_query or session.query
        current_query = session.query
        context = self._base_context(pattern, session)

        for tool_name in pattern.tools:
            result = await self._execute_single(tool_name, current_query, context, session)
            executions.append(result)

            if not result.success:
                logger.debug(f"Chain broken at stage {len(executions)} ({tool_name})")
                break

            if result.response:
                current_query = chain_query(result.response, original_query)
                context = {
                    **context,
                    "previousToolOutput": result.response,
                    "chainStep": len(executions),
                }

        return executions

    async def _execute_parallel(
        self, pattern: OrchestrationPattern, session: SessionContext
    ) -> List[ToolExecution]:
        context = self._base_context(pattern, session)
        semaphore = asyncio.Semaphore(self.config.max_concurrent)

        async def bounded(tool_name: str) -> ToolExecution:
            async with semaphore:
                return await self._execute_single(tool_name, session.query, context, session)

        batch_results = await asyncio.gather(
            *(bounded(name) for name in pattern.tools), return_exceptions=True
        )

        executions: List[ToolExecution] = []
        for tool_name, res in zip(pattern.tools, batch_results):
            if isinstance(res, Exception):
                executions.append(self._create_error_result(tool_name, describe_exception(res)))
            elif isinstance(res, BaseException):
                raise res
            else:
                executions.append(res)
        return executions

    async def _execute_fallback(
        self, pattern: OrchestrationPattern, session: SessionContext
    ) -> List[ToolExecution]:
        executions: List[ToolExecution] = []
        context = self._base_context(pattern, session)

        for tool_name in pattern.tools:
            result = await self._execute_single(tool_name, session.query, context, session)
            executions.append(result)
            if result.success:
                break
        else:
            logger.warning(f"All {len(executions)} fallback capabilities failed")

        return executions

    # -------------------------------------------------------------------------
    # Single invocation
    # -------------------------------------------------------------------------

    def _create_error_result(
        self, tool_name: str, error: str, duration_ms: int = 0
    ) -> ToolExecution:
        return ToolExecution(
            tool=tool_name,
            success=False,
            response=None,
            duration_ms=duration_ms,
            error=error,
        )

    def _notify(self, tool_name: str, status: str, success: bool) -> None:
        if self.progress_callback:
            self.progress_callback(tool_name, status, success)

    async def _execute_single(
        self,
        tool_name: str,
        query: str,
        context: Mapping[str, Any],
        session: SessionContext,
    ) -> ToolExecution:
        start = time.perf_counter()
        self._notify(tool_name, "started", True)

        try:
            capability = self.registry.get_tool(tool_name)
            payload = CapabilityInput(
                query=query,
                user_state=session.user_state,
                context=context,
                session_id=session.session_id,
            )
            raw = await asyncio.wait_for(
                capability.execute(payload), timeout=self.config.timeout_per_tool
            )
            reply = normalize_response(raw)

        except asyncio.TimeoutError:
            error_msg = CapabilityTimeoutError(tool_name, self.config.timeout_per_tool).message
            logger.warning(error_msg)
            self._notify(tool_name, "timeout", False)
            return self._create_error_result(tool_name, error_msg, _elapsed_ms(start))

        except asyncio.CancelledError:
            if _caller_cancelled():
                raise
            # The capability cancelled itself; the turn goes on
            error_msg = f"Capability '{tool_name}' was cancelled"
            logger.warning(error_msg)
            self._notify(tool_name, "error", False)
            return self._create_error_result(tool_name, error_msg, _elapsed_ms(start))

        except Exception as e:
            logger.warning(f"Capability '{tool_name}' failed: {describe_exception(e)}")
            self._notify(tool_name, "error", False)
            return self._create_error_result(tool_name, describe_exception(e), _elapsed_ms(start))

        duration_ms = _elapsed_ms(start)
        self._notify(tool_name, "completed", reply.success)
        if not reply.success:
            error = CapabilityExecutionError(
                f"Capability '{tool_name}' reported failure", tool_name=tool_name
            )
            return self._create_error_result(tool_name, error.message, duration_ms)
        return ToolExecution(
            tool=tool_name,
            success=True,
            response=reply.response,
            duration_ms=duration_ms,
        )


def combine_responses(
    pattern: OrchestrationPattern, executions: Sequence[ToolExecution]
) -> Optional[str]:
    """Reply text for the turn, ``None`` when nothing succeeded."""
    replies = [e.response for e in executions if e.success and e.response]
    if not replies:
        return None
    if pattern.type == PatternType.PARALLEL:
        return "\n\n".join(replies)
    if pattern.type == PatternType.CHAIN:
        return replies[-1]
    return replies[0]


def create_pattern_executor(
    registry: CapabilityRegistryProtocol,
    timeout_per_tool: float = Timeouts.CAPABILITY_DEFAULT,
    max_concurrent: int = 5,
    progress_callback: Optional[ProgressCallback] = None,
) -> PatternExecutor:
    config = PatternExecutionConfig(timeout_per_tool=timeout_per_tool, max_concurrent=max_concurrent)
    return PatternExecutor(registry, config, progress_callback)
