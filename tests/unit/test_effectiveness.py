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

"""Tests for pattern effectiveness scoring."""

import pytest

from tutor_orchestrator.agent.effectiveness import (
    coverage_score,
    score_pattern,
    speed_score,
)
from tutor_orchestrator.agent.types import OrchestrationPattern, PatternType, ToolExecution


def ok(tool, duration_ms=100):
    return ToolExecution(tool=tool, success=True, response=f"{tool} reply", duration_ms=duration_ms)


def failed(tool):
    return ToolExecution(tool=tool, success=False, error="boom")


def pattern(kind, *tools):
    return OrchestrationPattern(type=kind, reason="test", tools=tools)


class TestSpeedScore:
    """Tests for the latency component."""

    def test_fast_reply_full_credit(self):
        assert speed_score(50) == 1.0

    def test_linear_decay(self):
        assert speed_score(4500) == pytest.approx(0.5)

    def test_very_slow_reply_no_credit(self):
        assert speed_score(60_000) == 0.0


class TestCoverageScore:
    """Tests for pattern-specific coverage."""

    def test_partial_parallel(self):
        executions = [ok("a"), failed("b")]
        assert coverage_score(pattern(PatternType.PARALLEL, "a", "b"), executions) == 0.5

    def test_broken_chain(self):
        executions = [ok("a"), failed("b")]
        assert coverage_score(pattern(PatternType.CHAIN, "a", "b", "c"), executions) == (
            pytest.approx(1 / 3)
        )

    def test_late_fallback_success(self):
        executions = [failed("a"), ok("b")]
        assert coverage_score(pattern(PatternType.FALLBACK, "a", "b"), executions) == 0.5


class TestScorePattern:
    """Tests for the combined score."""

    def test_no_executions(self):
        assert score_pattern(pattern(PatternType.SINGLE, "a"), []) == 0.0

    def test_all_failed_is_zero(self):
        executions = [failed("a"), failed("b")]
        assert score_pattern(pattern(PatternType.FALLBACK, "a", "b"), executions) == 0.0

    @pytest.mark.parametrize(
        "kind,tools",
        [
            (PatternType.SINGLE, ("a",)),
            (PatternType.HANDOFF, ("a",)),
            (PatternType.CHAIN, ("a", "b")),
            (PatternType.PARALLEL, ("a", "b", "c")),
            (PatternType.FALLBACK, ("a", "b")),
        ],
    )
    def test_all_success_scores_above_half(self, kind, tools):
        p = pattern(kind, *tools)
        executions = [ok(t) for t in tools]
        if kind == PatternType.FALLBACK:
            executions = executions[:1]
        score = score_pattern(p, executions)
        assert 0.5 < score <= 1.0

    def test_slow_success_still_above_half(self):
        score = score_pattern(pattern(PatternType.SINGLE, "a"), [ok("a", duration_ms=120_000)])
        assert score == pytest.approx(0.8)

    def test_partial_failure_between_bounds(self):
        p = pattern(PatternType.PARALLEL, "a", "b")
        score = score_pattern(p, [ok("a"), failed("b")])
        assert 0.0 < score < score_pattern(p, [ok("a"), ok("b")])
