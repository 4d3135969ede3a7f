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

"""Protocols for the orchestrator's collaborators.

Defines interfaces for everything the orchestrator consumes but does not
own. These protocols enable:
- Type-safe dependency injection
- Easy testing via mock substitution
- Clear component contracts

Usage:
    from tutor_orchestrator.agent.protocols import Capability, IntentClassifier

    class QuickAnswer:
        name = "quick_answer"

        async def execute(self, payload: CapabilityInput) -> CapabilityResponse:
            ...

    # Mock in tests
    mock_classifier = MagicMock(spec=IntentClassifier)
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    from tutor_orchestrator.agent.types import CapabilityInput


# Async text-completion callable: prompt in, raw model text out.
CompletionFn = Callable[[str], Awaitable[str]]


# =============================================================================
# Capability Protocols
# =============================================================================


@runtime_checkable
class Capability(Protocol):
    """A named, independently invocable response generator.

    ``execute`` may return a ``CapabilityResponse``, a mapping with
    ``response``/``success`` keys, or a plain string (treated as success).
    """

    async def execute(self, payload: "CapabilityInput") -> Any:
        ...


@runtime_checkable
class CapabilityRegistryProtocol(Protocol):
    """Resolves capability names to handles."""

    def get_tool(self, name: str) -> Capability:
        """Return the capability or raise ``CapabilityNotFoundError``."""
        ...


# =============================================================================
# Classification Protocols
# =============================================================================


@runtime_checkable
class IntentClassifier(Protocol):
    """Reports the independent learning intents present in a message."""

    async def detect_intents(self, message: str) -> List[str]:
        ...


# =============================================================================
# Session Protocols
# =============================================================================


@runtime_checkable
class ContextProvider(Protocol):
    """Read-only fetch of session context."""

    async def get_context(self, session_id: Optional[str]) -> Dict[str, Any]:
        ...


@runtime_checkable
class QueryNormalizer(Protocol):
    """Side-effect free query pre-processing."""

    def optimize(self, query: str, context: Optional[Mapping[str, Any]] = None) -> str:
        ...
