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

"""Tests for IntentRouter."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from tutor_orchestrator.agent.intent_router import (
    IntentRouter,
    estimate_retrieval_need,
    parse_json_reply,
)
from tutor_orchestrator.agent.user_state import EngagementDepth, LearningIntent
from tutor_orchestrator.config.config_loaders import ToolMatrix
from tutor_orchestrator.config.settings import OrchestratorSettings
from tutor_orchestrator.core.errors import ClassifierError, ErrorCategory


def reply(**fields):
    data = {
        "primaryIntent": "understand",
        "secondaryIntents": [],
        "depth": "guided",
        "confidence": 0.9,
        "reasoning": "test",
    }
    data.update(fields)
    return json.dumps(data)


@pytest.fixture
def router(settings, tool_matrix):
    return IntentRouter(tool_matrix=tool_matrix, settings=settings)


class TestSelectToolForIntent:
    """Tests for the intent x depth lookup."""

    @pytest.mark.parametrize(
        "intent,depth,expected",
        [
            (LearningIntent.UNDERSTAND, EngagementDepth.SURFACE, "quick_answer"),
            (LearningIntent.UNDERSTAND, EngagementDepth.GUIDED, "socratic_tool"),
            (LearningIntent.UNDERSTAND, EngagementDepth.DEEP, "concept_mapper"),
            (LearningIntent.CREATE, EngagementDepth.SURFACE, "writing_assistant"),
            (LearningIntent.CREATE, EngagementDepth.GUIDED, "project_ideation_tool"),
            (LearningIntent.SOLVE, EngagementDepth.DEEP, "breakthrough_tool"),
            (LearningIntent.EVALUATE, EngagementDepth.GUIDED, "review_tool"),
            (LearningIntent.ORGANIZE, EngagementDepth.DEEP, "plan_manager"),
        ],
    )
    def test_matrix(self, router, intent, depth, expected):
        assert router.select_tool_for_intent(intent, depth) == expected

    def test_accepts_plain_strings(self, router):
        assert router.select_tool_for_intent("create", "deep") == "creative_exploration_tool"

    def test_unknown_cell_uses_default(self, settings):
        router = IntentRouter(tool_matrix=ToolMatrix(), settings=settings)
        assert router.select_tool_for_intent("understand", "surface") == "socratic_tool"

    def test_explicit_default_tool_setting_wins(self):
        settings = OrchestratorSettings(default_tool="quick_answer")
        router = IntentRouter(tool_matrix=ToolMatrix(default_tool="socratic_tool"), settings=settings)
        assert router.default_tool == "quick_answer"
        assert router.select_tool_for_intent("nonsense", "surface") == "quick_answer"

    def test_matrix_default_used_when_setting_untouched(self, settings):
        router = IntentRouter(tool_matrix=ToolMatrix(default_tool="plan_manager"), settings=settings)
        assert router.default_tool == "plan_manager"


class TestKeywordRoute:
    """Tests for keyword routing."""

    @pytest.mark.parametrize(
        "query,intent,depth,tool",
        [
            ("Help me draft my college essay", "create", "guided", "project_ideation_tool"),
            ("Give me a quick fix for this bug", "solve", "surface", "problem_solver"),
            ("I want a comprehensive plan for finals", "organize", "deep", "plan_manager"),
            ("What is entropy?", "understand", "guided", "socratic_tool"),
        ],
    )
    def test_keyword_route(self, router, query, intent, depth, tool):
        route = router.keyword_route(query)
        assert route.primary_intent.value == intent
        assert route.depth.value == depth
        assert route.suggested_tool == tool
        assert route.source == "keyword"
        assert route.confidence == 0.5

    @pytest.mark.asyncio
    async def test_route_without_model_uses_keywords(self, router):
        route = await router.route("Help me write a poem")
        assert route.primary_intent == LearningIntent.CREATE
        assert route.source == "keyword"


class TestModelRoute:
    """Tests for model-backed routing."""

    @pytest.mark.asyncio
    async def test_classifier_route(self, settings, tool_matrix):
        complete = AsyncMock(
            return_value=reply(
                primaryIntent="create", secondaryIntents=["evaluate", "create"], depth="surface"
            )
        )
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        route = await router.route("Help me draft my college essay", {"turn": 1})

        assert route.primary_intent == LearningIntent.CREATE
        assert route.secondary_intents == (LearningIntent.EVALUATE,)
        assert route.depth == EngagementDepth.SURFACE
        assert route.suggested_tool == "writing_assistant"
        assert route.source == "classifier"
        assert "Help me draft my college essay" in complete.await_args.args[0]

    @pytest.mark.asyncio
    async def test_fenced_reply(self, settings, tool_matrix):
        complete = AsyncMock(return_value=f"```json\n{reply(primaryIntent='solve')}\n```")
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)
        route = await router.route("x")
        assert route.primary_intent == LearningIntent.SOLVE

    @pytest.mark.asyncio
    async def test_cache_hit(self, settings, tool_matrix):
        complete = AsyncMock(return_value=reply())
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        first = await router.route("What is entropy?")
        second = await router.route("What is entropy?")

        assert complete.await_count == 1
        assert first.source == "classifier"
        assert second.source == "cache"
        assert second.suggested_tool == first.suggested_tool
        metrics = router.get_metrics()
        assert metrics["cacheHits"] == 1
        assert metrics["cacheHitRate"] == pytest.approx(0.5)
        assert metrics["cacheSize"] == 1

    @pytest.mark.asyncio
    async def test_expired_entries_not_served(self, tool_matrix):
        settings = OrchestratorSettings(route_cache_ttl_seconds=0)
        complete = AsyncMock(return_value=reply())
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        await router.route("q")
        await router.route("q")

        assert complete.await_count == 2

    @pytest.mark.asyncio
    async def test_lru_eviction(self, tool_matrix):
        settings = OrchestratorSettings(route_cache_max_size=2)
        complete = AsyncMock(return_value=reply())
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        await router.route("a")
        await router.route("b")
        await router.route("a")  # refresh a
        await router.route("c")  # evicts b

        assert router.get_metrics()["cacheSize"] == 2
        await router.route("a")
        assert complete.await_count == 3
        await router.route("b")
        assert complete.await_count == 4

    @pytest.mark.asyncio
    async def test_low_confidence_reasks_once(self, settings, tool_matrix):
        complete = AsyncMock(
            side_effect=[
                reply(primaryIntent="understand", confidence=0.3),
                reply(primaryIntent="evaluate", confidence=0.85),
            ]
        )
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        route = await router.route("Is this argument any good?")

        assert complete.await_count == 2
        assert "low confidence" in complete.await_args_list[1].args[0]
        assert route.primary_intent == LearningIntent.EVALUATE
        assert route.confidence == pytest.approx(0.85)
        assert router.metrics.low_confidence_retries == 1

    @pytest.mark.asyncio
    async def test_failed_retry_keeps_first_answer(self, settings, tool_matrix):
        complete = AsyncMock(
            side_effect=[reply(primaryIntent="solve", confidence=0.2), "not json"]
        )
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        route = await router.route("stuck on recursion")

        assert route.primary_intent == LearningIntent.SOLVE
        assert route.source == "classifier"

    @pytest.mark.asyncio
    async def test_classifier_error_falls_back_to_keywords(self, settings, tool_matrix):
        complete = AsyncMock(side_effect=RuntimeError("service down"))
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        route = await router.route("Help me draft my essay")

        assert route.source == "keyword"
        assert route.primary_intent == LearningIntent.CREATE
        assert router.metrics.keyword_fallbacks == 1
        # Fallback routes are not cached
        assert router.get_metrics()["cacheSize"] == 0

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_keywords(self, tool_matrix):
        settings = OrchestratorSettings(classifier_timeout_seconds=0.05)

        async def slow(prompt):
            await asyncio.sleep(1.0)
            return reply()

        router = IntentRouter(tool_matrix, complete=slow, settings=settings)
        route = await router.route("debug my code")

        assert route.source == "keyword"
        assert route.primary_intent == LearningIntent.SOLVE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("labels", [5, "create, solve", {"create": True}, None])
    async def test_malformed_secondary_intents_ignored(self, settings, tool_matrix, labels):
        complete = AsyncMock(return_value=reply(primaryIntent="create", secondaryIntents=labels))
        router = IntentRouter(tool_matrix, complete=complete, settings=settings)

        route = await router.route("write an essay")

        assert route.source == "classifier"
        assert route.primary_intent == LearningIntent.CREATE
        assert route.secondary_intents == ()

    @pytest.mark.asyncio
    async def test_ask_without_completion_raises_classifier_error(self, router):
        with pytest.raises(ClassifierError):
            await router._ask("prompt")

    @pytest.mark.asyncio
    async def test_clear_cache(self, settings, tool_matrix):
        router = IntentRouter(tool_matrix, complete=AsyncMock(return_value=reply()), settings=settings)
        await router.route("q")
        router.clear_cache()
        assert router.get_metrics()["cacheSize"] == 0


class TestParseJsonReply:
    """Tests for parse_json_reply."""

    def test_plain_object(self):
        assert parse_json_reply('{"a": 1}') == {"a": 1}

    def test_fenced_object(self):
        assert parse_json_reply('```json\n{"a": 1}\n```') == {"a": 1}

    def test_invalid_json(self):
        with pytest.raises(ClassifierError) as exc_info:
            parse_json_reply("I think the intent is create")
        assert exc_info.value.category == ErrorCategory.CLASSIFIER_INVALID_RESPONSE

    def test_non_object(self):
        with pytest.raises(ClassifierError):
            parse_json_reply("[1, 2]")


class TestEstimateRetrievalNeed:
    """Tests for estimate_retrieval_need."""

    def test_indicator_phrase(self):
        assert estimate_retrieval_need(
            "What does the study say?", LearningIntent.UNDERSTAND, EngagementDepth.SURFACE
        )

    def test_deep_always_retrieves(self):
        assert estimate_retrieval_need("why", LearningIntent.UNDERSTAND, EngagementDepth.DEEP)

    def test_intent_and_depth(self):
        assert estimate_retrieval_need("x", LearningIntent.EVALUATE, EngagementDepth.GUIDED)
        assert not estimate_retrieval_need("x", LearningIntent.EVALUATE, EngagementDepth.SURFACE)
        assert not estimate_retrieval_need("x", LearningIntent.SOLVE, EngagementDepth.GUIDED)
