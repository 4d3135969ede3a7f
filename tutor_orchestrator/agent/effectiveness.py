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

"""Pattern effectiveness scoring.

A pure function of ``(pattern, executions)`` so it can be tested against
hand-built executions without invoking any capability.

Score components:
- success: fraction of invocations that succeeded
- coverage: how much of the planned pattern was delivered
- speed: how close successful invocations stayed to the latency target

Bounds: always within [0, 1]; no successful execution scores 0.0; an
all-success result scores at least SUCCESS_WEIGHT + COVERAGE_WEIGHT * coverage,
which is above 0.5.
"""

from __future__ import annotations

from typing import Sequence

from tutor_orchestrator.agent.types import OrchestrationPattern, PatternType, ToolExecution

SUCCESS_WEIGHT = 0.5
COVERAGE_WEIGHT = 0.3
SPEED_WEIGHT = 0.2

# Replies slower than this start losing speed credit; twice this earns none
TARGET_LATENCY_MS = 3000


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def speed_score(duration_ms: int, target_ms: int = TARGET_LATENCY_MS) -> float:
    """1.0 up to ``target_ms``, falling linearly to 0.0 at twice the target."""
    return _clamp(1 - (duration_ms - target_ms) / target_ms)


def coverage_score(pattern: OrchestrationPattern, executions: Sequence[ToolExecution]) -> float:
    """Pattern-specific share of the plan that was delivered."""
    successes = sum(1 for e in executions if e.success)
    if successes == 0:
        return 0.0

    if pattern.type in (PatternType.CHAIN, PatternType.PARALLEL):
        return _clamp(successes / len(pattern.tools))

    if pattern.type == PatternType.FALLBACK:
        # Earlier success means the learner waited through fewer attempts
        first_success = next(i for i, e in enumerate(executions) if e.success)
        return 1.0 / (first_success + 1)

    return 1.0


def score_pattern(pattern: OrchestrationPattern, executions: Sequence[ToolExecution]) -> float:
    """Score how well the chosen pattern served the turn, in [0, 1]."""
    if not executions:
        return 0.0

    successful = [e for e in executions if e.success]
    if not successful:
        return 0.0

    success_rate = len(successful) / len(executions)
    speed = sum(speed_score(e.duration_ms) for e in successful) / len(successful)

    score = (
        SUCCESS_WEIGHT * success_rate
        + COVERAGE_WEIGHT * coverage_score(pattern, executions)
        + SPEED_WEIGHT * speed
    )
    return round(_clamp(score), 4)
