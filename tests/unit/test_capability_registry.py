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

"""Tests for CapabilityRegistry and reply normalization."""

from types import SimpleNamespace

import pytest

from tutor_orchestrator.agent.capability_registry import (
    CapabilityRegistry,
    FunctionCapability,
    normalize_response,
)
from tutor_orchestrator.agent.types import CapabilityInput, CapabilityResponse
from tutor_orchestrator.core.errors import CapabilityNotFoundError, ErrorCategory


class TestCapabilityRegistry:
    """Tests for registration and lookup."""

    def test_register_and_get(self, fake_capability):
        registry = CapabilityRegistry()
        capability = fake_capability("quick_answer")
        registry.register("quick_answer", capability)

        assert registry.get_tool("quick_answer") is capability
        assert "quick_answer" in registry
        assert len(registry) == 1

    def test_unknown_name_raises(self):
        registry = CapabilityRegistry()
        with pytest.raises(CapabilityNotFoundError) as exc_info:
            registry.get_tool("missing")
        assert exc_info.value.tool_name == "missing"
        assert exc_info.value.category == ErrorCategory.CAPABILITY_NOT_FOUND

    def test_empty_name_rejected(self, fake_capability):
        with pytest.raises(ValueError):
            CapabilityRegistry().register("", fake_capability("x"))

    def test_replace_and_unregister(self, fake_capability):
        registry = CapabilityRegistry({"a": fake_capability("a")})
        replacement = fake_capability("a2")
        registry.register("a", replacement)
        assert registry.get_tool("a") is replacement

        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        assert not registry.has_tool("a")

    def test_list_tools_sorted(self, registry):
        tools = registry.list_tools()
        assert tools == sorted(tools)
        assert "writing_assistant" in tools

    @pytest.mark.asyncio
    async def test_register_function(self, make_state):
        registry = CapabilityRegistry()

        async def shout(payload):
            return payload.query.upper()

        registry.register_function("shout", shout)
        handle = registry.get_tool("shout")
        assert isinstance(handle, FunctionCapability)
        assert await handle.execute(CapabilityInput(query="hi", user_state=make_state())) == "HI"


class TestNormalizeResponse:
    """Tests for normalize_response."""

    def test_string(self):
        assert normalize_response("hello") == CapabilityResponse(response="hello", success=True)

    def test_none_is_failure(self):
        assert normalize_response(None).success is False

    def test_mapping_defaults_success(self):
        assert normalize_response({"response": "hi"}) == CapabilityResponse("hi", True)

    def test_mapping_failure_flag(self):
        assert normalize_response({"response": "x", "success": False}).success is False

    def test_mapping_non_string_response(self):
        assert normalize_response({"response": 42}).response == "42"

    def test_object_attributes(self):
        reply = normalize_response(SimpleNamespace(response="obj", success=True))
        assert reply == CapabilityResponse("obj", True)

    def test_passthrough(self):
        reply = CapabilityResponse("x", False)
        assert normalize_response(reply) is reply
