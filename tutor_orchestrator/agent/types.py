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

"""Shared value types for pattern detection and execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from tutor_orchestrator.agent.user_state import UserState


class PatternType(str, Enum):
    """Orchestration strategy chosen for one turn."""

    SINGLE = "single"
    HANDOFF = "handoff"
    CHAIN = "chain"
    PARALLEL = "parallel"
    FALLBACK = "fallback"


def _freeze(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class OrchestrationPattern:
    """Pattern type, reason and the ordered capabilities to invoke.

    ``tools`` is stored as a tuple and must not be empty; ``context`` is a
    read-only view.
    """

    type: PatternType
    reason: str
    tools: Tuple[str, ...]
    context: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        tools = tuple(self.tools)
        if not tools:
            raise ValueError("OrchestrationPattern requires at least one tool")
        object.__setattr__(self, "tools", tools)
        object.__setattr__(self, "type", PatternType(self.type))
        object.__setattr__(self, "context", _freeze(self.context))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "reason": self.reason,
            "tools": list(self.tools),
            "context": dict(self.context),
        }


@dataclass(frozen=True)
class ToolExecution:
    """Outcome of one capability invocation."""

    tool: str
    success: bool
    response: Optional[str] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "tool": self.tool,
            "success": self.success,
            "response": self.response,
            "durationMs": self.duration_ms,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ResultMetadata:
    tool_count: int
    total_execution_time: int
    pattern_effectiveness: float


@dataclass(frozen=True)
class MultiToolResult:
    """Everything one ``orchestrate`` call produced.

    Constructed once per call and handed to the caller; never mutated.
    """

    pattern: OrchestrationPattern
    executions: Tuple[ToolExecution, ...]
    metadata: ResultMetadata
    final_response: Optional[str] = None
    predicted_tools: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "executions", tuple(self.executions))
        object.__setattr__(self, "predicted_tools", tuple(self.predicted_tools))

    @property
    def success(self) -> bool:
        """At least one capability produced a reply."""
        return any(e.success for e in self.executions)

    @property
    def degraded(self) -> bool:
        """No capability succeeded; the caller should render a generic reply."""
        return not self.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern.to_dict(),
            "executions": [e.to_dict() for e in self.executions],
            "finalResponse": self.final_response,
            "predictedTools": list(self.predicted_tools),
            "metadata": {
                "toolCount": self.metadata.tool_count,
                "totalExecutionTime": self.metadata.total_execution_time,
                "patternEffectiveness": self.metadata.pattern_effectiveness,
            },
        }


@dataclass(frozen=True)
class CapabilityInput:
    """Payload handed to ``Capability.execute``."""

    query: str
    user_state: UserState
    context: Mapping[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "context", _freeze(self.context))


@dataclass(frozen=True)
class CapabilityResponse:
    """Normalized capability reply."""

    response: Optional[str]
    success: bool = True


@dataclass(frozen=True)
class SessionContext:
    """Per-turn execution context for the pattern executor."""

    query: str
    user_state: UserState
    session_id: Optional[str] = None
    context: Mapping[str, Any] = field(default_factory=dict)
    original_query: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "context", _freeze(self.context))
        if self.original_query is None:
            object.__setattr__(self, "original_query", self.query)


def tools_tuple(tools: Sequence[str]) -> Tuple[str, ...]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: Dict[str, None] = {}
    for name in tools:
        if name and name not in seen:
            seen[name] = None
    return tuple(seen)
