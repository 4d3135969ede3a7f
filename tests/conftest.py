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

"""Shared pytest fixtures and configuration."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from tutor_orchestrator.agent.capability_registry import CapabilityRegistry
from tutor_orchestrator.agent.types import CapabilityInput
from tutor_orchestrator.agent.user_state import (
    DepthState,
    EngagementDepth,
    IntentState,
    LearningIntent,
    Sentiment,
    SentimentType,
    ToolingState,
    UserState,
)
from tutor_orchestrator.config import config_loaders
from tutor_orchestrator.config import settings as settings_module
from tutor_orchestrator.config.config_loaders import load_tool_matrix
from tutor_orchestrator.config.settings import OrchestratorSettings


class FakeCapability:
    """Scriptable capability that records every payload it receives.

    Args:
        name: capability name
        response: reply text (``"<name> reply"`` by default)
        fail: raise RuntimeError instead of replying
        delay: seconds to sleep before replying
        success: ``success`` flag of the returned mapping
    """

    def __init__(
        self,
        name: str,
        response: Optional[str] = None,
        fail: bool = False,
        delay: float = 0.0,
        success: bool = True,
    ):
        self.name = name
        self.response = response if response is not None else f"{name} reply"
        self.fail = fail
        self.delay = delay
        self.success = success
        self.calls: List[CapabilityInput] = []
        self.started_at: List[float] = []
        self.finished_at: List[float] = []

    async def execute(self, payload: CapabilityInput) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        self.calls.append(payload)
        self.started_at.append(loop.time())
        if self.delay:
            await asyncio.sleep(self.delay)
        self.finished_at.append(loop.time())
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        return {"response": self.response, "success": self.success}


def make_state(
    intent: LearningIntent = LearningIntent.UNDERSTAND,
    depth: EngagementDepth = EngagementDepth.SURFACE,
    frustration: float = 0.0,
    sentiment: SentimentType = SentimentType.NEUTRAL,
    changed: bool = False,
    change_reason: str = "",
    change_indicator: bool = False,
    suggested_tool: str = "",
    current_tool: str = "",
) -> UserState:
    """Compact UserState builder for tests."""
    return UserState(
        sentiment=Sentiment(type=sentiment, frustration_level=frustration, confidence=0.8),
        intent=IntentState(current=intent, changed=changed, change_reason=change_reason),
        depth=DepthState(current=depth, requested=depth, change_indicator=change_indicator),
        tooling=ToolingState(current_tool_appropriate=current_tool, suggested_tool=suggested_tool),
    )


@pytest.fixture(autouse=True)
def isolate_environment_variables(monkeypatch):
    """Isolate tests from TUTOR_* environment variables and cached config."""
    monkeypatch.setenv("TUTOR_SKIP_ENV_FILE", "1")
    for var in [
        "TUTOR_FRUSTRATION_THRESHOLD",
        "TUTOR_DEFAULT_TOOL",
        "TUTOR_FALLBACK_TOOLS",
        "TUTOR_TOOL_MATRIX_PATH",
        "TUTOR_LOG_LEVEL",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(settings_module, "_settings", None)
    config_loaders.invalidate_config_cache()
    yield
    config_loaders.invalidate_config_cache()


@pytest.fixture
def settings():
    """Default settings with short timeouts."""
    return OrchestratorSettings(
        tool_timeout_seconds=1.0,
        classifier_timeout_seconds=0.5,
        state_analysis_timeout_seconds=0.5,
    )


@pytest.fixture
def tool_matrix():
    return load_tool_matrix()


@pytest.fixture
def capabilities():
    """One fake capability for every name in the routing tables."""
    names = [
        "quick_answer",
        "practical_guide",
        "socratic_tool",
        "concept_mapper",
        "writing_assistant",
        "project_ideation_tool",
        "creative_exploration_tool",
        "problem_solver",
        "breakthrough_tool",
        "evaluator_tool",
        "review_tool",
        "critical_analysis_tool",
        "plan_manager",
    ]
    return {name: FakeCapability(name) for name in names}


@pytest.fixture
def registry(capabilities):
    return CapabilityRegistry(capabilities)


@pytest.fixture(name="make_state")
def make_state_fixture():
    """The ``make_state`` builder."""
    return make_state


@pytest.fixture(name="fake_capability")
def fake_capability_fixture():
    """The ``FakeCapability`` class."""
    return FakeCapability
