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

"""Explicit registry of response-generating capabilities.

Capabilities are registered up front and resolved by name; there is no
global instance. The registry belongs to the orchestrator's dependency set.

Design Pattern: Registry
========================
- register() binds a name to a handle implementing ``Capability``
- get_tool() resolves a name or raises CapabilityNotFoundError
- FunctionCapability adapts a plain async callable

Usage:
    registry = CapabilityRegistry()
    registry.register("quick_answer", QuickAnswerCapability())
    registry.register_function("practical_guide", practical_guide_fn)

    handle = registry.get_tool("quick_answer")
    reply = await handle.execute(payload)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from tutor_orchestrator.agent.protocols import Capability
from tutor_orchestrator.agent.types import CapabilityInput, CapabilityResponse
from tutor_orchestrator.core.errors import CapabilityNotFoundError

logger = logging.getLogger(__name__)

CapabilityFn = Callable[[CapabilityInput], Awaitable[Any]]


class FunctionCapability:
    """Wraps an async callable as a ``Capability``."""

    def __init__(self, name: str, fn: CapabilityFn):
        self.name = name
        self._fn = fn

    async def execute(self, payload: CapabilityInput) -> Any:
        return await self._fn(payload)

    def __repr__(self) -> str:
        return f"FunctionCapability(name={self.name!r})"


def normalize_response(raw: Any) -> CapabilityResponse:
    """Coerce whatever a capability returned into a ``CapabilityResponse``.

    Strings count as successful replies; mappings are read for ``response``
    and ``success`` (default True, matching capabilities that only return
    text); ``None`` is a failure.
    """
    if isinstance(raw, CapabilityResponse):
        return raw
    if raw is None:
        return CapabilityResponse(response=None, success=False)
    if isinstance(raw, str):
        return CapabilityResponse(response=raw, success=True)
    if isinstance(raw, Mapping):
        response = raw.get("response")
        if response is not None and not isinstance(response, str):
            response = str(response)
        return CapabilityResponse(response=response, success=bool(raw.get("success", True)))
    response = getattr(raw, "response", None)
    success = getattr(raw, "success", True)
    return CapabilityResponse(
        response=str(response) if response is not None else None,
        success=bool(success),
    )


class CapabilityRegistry:
    """Name to capability map, safe to read from concurrent turns."""

    def __init__(self, capabilities: Optional[Mapping[str, Capability]] = None):
        self._capabilities: Dict[str, Capability] = {}
        self._lock = threading.Lock()
        for name, capability in (capabilities or {}).items():
            self.register(name, capability)

    def register(self, name: str, capability: Capability) -> None:
        """Register (or replace) a capability under ``name``."""
        if not name:
            raise ValueError("Capability name must be non-empty")
        with self._lock:
            replaced = name in self._capabilities
            self._capabilities[name] = capability
        logger.debug(f"{'Replaced' if replaced else 'Registered'} capability: {name}")

    def register_function(self, name: str, fn: CapabilityFn) -> None:
        """Register an async callable as a capability."""
        self.register(name, FunctionCapability(name, fn))

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._capabilities.pop(name, None) is not None

    def get_tool(self, name: str) -> Capability:
        """Resolve a capability handle.

        Raises:
            CapabilityNotFoundError: if ``name`` is not registered
        """
        with self._lock:
            capability = self._capabilities.get(name)
        if capability is None:
            raise CapabilityNotFoundError(name)
        return capability

    def has_tool(self, name: str) -> bool:
        with self._lock:
            return name in self._capabilities

    def list_tools(self) -> List[str]:
        with self._lock:
            return sorted(self._capabilities)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has_tool(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._capabilities)
