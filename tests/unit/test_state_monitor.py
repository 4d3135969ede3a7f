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

"""Tests for StateMonitor."""

import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from tutor_orchestrator.agent.intent_router import IntentRouter
from tutor_orchestrator.agent.state_monitor import (
    HISTORY_CHARS,
    StateMonitor,
    format_history,
    needs_emotional_support,
    needs_tool_switch,
)
from tutor_orchestrator.agent.user_state import (
    Dynamics,
    EngagementDepth,
    LearningIntent,
    ProgressionPattern,
    SentimentType,
    UserState,
)
from tutor_orchestrator.config.settings import OrchestratorSettings


def analysis(intent="understand", depth="guided", frustration=0.2, sentiment="engaged", **extra):
    data = {
        "sentiment": {"type": sentiment, "frustrationLevel": frustration, "confidence": 0.8},
        "intent": {"current": intent, "changed": False, "changeReason": ""},
        "depth": {"current": depth, "requested": depth, "changeIndicator": False},
    }
    data.update(extra)
    return json.dumps(data)


@pytest.fixture
def router(settings, tool_matrix):
    return IntentRouter(tool_matrix=tool_matrix, settings=settings)


def monitor_with(reply, router, settings):
    complete = AsyncMock(return_value=reply)
    return StateMonitor(complete=complete, intent_router=router, settings=settings), complete


class TestQuickStateCheck:
    """Tests for the regex short-circuit."""

    @pytest.mark.asyncio
    async def test_give_up_is_frustration(self, router, settings):
        monitor, complete = monitor_with(analysis(), router, settings)

        state = await monitor.analyze("Ugh, I give up on this proof")

        complete.assert_not_awaited()
        assert state.sentiment.type == SentimentType.FRUSTRATED
        assert state.sentiment.frustration_level == pytest.approx(0.9)
        assert state.tooling.suggested_tool == "quick_answer"

    @pytest.mark.asyncio
    async def test_just_tell_me_requests_surface(self, router, settings, make_state):
        monitor, complete = monitor_with(analysis(), router, settings)
        previous = make_state(depth=EngagementDepth.GUIDED)

        state = await monitor.analyze("Just tell me the answer", previous_state=previous)

        complete.assert_not_awaited()
        assert state.depth.current == EngagementDepth.GUIDED
        assert state.depth.requested == EngagementDepth.SURFACE
        assert state.depth.change_indicator is True

    @pytest.mark.asyncio
    async def test_quick_answer_only_at_start(self, router, settings):
        monitor, complete = monitor_with(analysis(), router, settings)
        await monitor.analyze("Can you give me the quick answer version?")
        complete.assert_awaited_once()


class TestClassifierAnalysis:
    """Tests for full analysis and post-processing."""

    @pytest.mark.asyncio
    async def test_fenced_reply_parsed(self, router, settings, make_state):
        monitor, complete = monitor_with(
            f"```json\n{analysis(intent='create', depth='guided')}\n```", router, settings
        )
        previous = make_state(intent=LearningIntent.UNDERSTAND, depth=EngagementDepth.SURFACE)

        state = await monitor.analyze(
            "Actually, help me write my essay",
            conversation_history=[{"role": "user", "content": "What is a thesis?"}],
            current_tool="quick_answer",
            previous_state=previous,
        )

        prompt = complete.await_args.args[0]
        assert "Tool: quick_answer" in prompt
        assert "user: What is a thesis?" in prompt

        assert state.intent.current == LearningIntent.CREATE
        assert state.intent.changed is True
        assert "understand" in state.intent.change_reason
        assert state.depth.current == EngagementDepth.GUIDED
        assert state.depth.change_indicator is True
        assert state.dynamics.progression_pattern == ProgressionPattern.DEEPENING
        assert state.dynamics.turns_at_current_depth == 1
        assert state.tooling.current_tool_appropriate == "quick_answer"
        assert state.tooling.suggested_tool == "project_ideation_tool"

    @pytest.mark.asyncio
    async def test_classifier_reason_kept(self, router, settings, make_state):
        reply = json.loads(analysis(intent="create"))
        reply["intent"]["changeReason"] = "User shifted from understanding to creating"
        monitor, _ = monitor_with(json.dumps(reply), router, settings)

        state = await monitor.analyze("x", previous_state=make_state())

        assert state.intent.change_reason == "User shifted from understanding to creating"

    @pytest.mark.asyncio
    async def test_suggested_tool_from_reply_wins(self, router, settings):
        monitor, _ = monitor_with(
            analysis(tooling={"suggestedTool": "concept_mapper"}), router, settings
        )
        state = await monitor.analyze("x")
        assert state.tooling.suggested_tool == "concept_mapper"

    @pytest.mark.asyncio
    async def test_turn_counter_and_stuck(self, router, settings, make_state):
        monitor, _ = monitor_with(
            analysis(depth="guided", frustration=0.7, sentiment="confused"), router, settings
        )
        previous = replace(
            make_state(depth=EngagementDepth.GUIDED, frustration=0.5),
            dynamics=Dynamics(turns_at_current_depth=2),
        )

        state = await monitor.analyze("I still don't get it", previous_state=previous)

        assert state.dynamics.turns_at_current_depth == 3
        assert state.dynamics.progression_pattern == ProgressionPattern.STUCK
        assert state.intent.changed is False
        assert state.depth.change_indicator is False

    @pytest.mark.asyncio
    async def test_first_turn_no_intent_change(self, router, settings):
        monitor, _ = monitor_with(analysis(intent="solve", depth="surface"), router, settings)
        state = await monitor.analyze("Fix my loop")
        assert state.intent.changed is False
        assert state.dynamics.turns_at_current_depth == 1


class TestAnalysisFailures:
    """Classifier failures fall back to the carried-over previous state."""

    @pytest.mark.asyncio
    async def test_invalid_json_returns_previous(self, router, settings, make_state):
        monitor, _ = monitor_with("I think they are curious", router, settings)
        previous = make_state(
            intent=LearningIntent.CREATE,
            depth=EngagementDepth.GUIDED,
            changed=True,
            change_reason="shifted",
            change_indicator=True,
            suggested_tool="project_ideation_tool",
        )

        state = await monitor.analyze("hmm", current_tool="project_ideation_tool", previous_state=previous)

        assert state.intent.current == LearningIntent.CREATE
        assert state.depth.current == EngagementDepth.GUIDED
        assert state.tooling.suggested_tool == "project_ideation_tool"
        # Per-turn flags do not repeat
        assert state.intent.changed is False
        assert state.intent.change_reason == ""
        assert state.depth.change_indicator is False
        assert state.tooling.current_tool_appropriate == "project_ideation_tool"

    @pytest.mark.asyncio
    async def test_exception_returns_default_on_first_turn(self, router, settings):
        complete = AsyncMock(side_effect=RuntimeError("model offline"))
        monitor = StateMonitor(complete=complete, intent_router=router, settings=settings)

        state = await monitor.analyze("hello")

        assert state == UserState.default()

    @pytest.mark.asyncio
    async def test_timeout_returns_previous(self, router, make_state):
        settings = OrchestratorSettings(state_analysis_timeout_seconds=0.05)

        async def slow(prompt):
            await asyncio.sleep(1.0)
            return analysis()

        monitor = StateMonitor(complete=slow, intent_router=router, settings=settings)
        previous = make_state(intent=LearningIntent.EVALUATE)

        state = await monitor.analyze("hmm", previous_state=previous)

        assert state.intent.current == LearningIntent.EVALUATE

    @pytest.mark.asyncio
    async def test_without_classifier(self, router, settings, make_state):
        monitor = StateMonitor(intent_router=router, settings=settings)
        previous = make_state(intent=LearningIntent.SOLVE)
        state = await monitor.analyze("next step?", previous_state=previous)
        assert state.intent.current == LearningIntent.SOLVE


class TestHelpers:
    """Tests for module-level helpers."""

    def test_format_history_keeps_last_turns(self):
        history = [{"role": "user", "content": f"turn {i}"} for i in range(6)]
        lines = format_history(history).splitlines()
        assert lines == ["user: turn 2", "user: turn 3", "user: turn 4", "user: turn 5"]

    def test_format_history_truncates(self):
        text = format_history([{"role": "assistant", "content": "x" * 500}])
        assert text == "assistant: " + "x" * HISTORY_CHARS

    def test_needs_emotional_support(self, make_state):
        assert needs_emotional_support(make_state(frustration=0.6))
        assert needs_emotional_support(make_state(sentiment=SentimentType.DISENGAGED))
        assert not needs_emotional_support(make_state(frustration=0.3))

    def test_needs_tool_switch(self, make_state):
        assert not needs_tool_switch(make_state())
        assert needs_tool_switch(make_state(changed=True))
        assert needs_tool_switch(
            make_state(current_tool="quick_answer", suggested_tool="socratic_tool")
        )
        assert not needs_tool_switch(
            make_state(current_tool="socratic_tool", suggested_tool="socratic_tool")
        )
