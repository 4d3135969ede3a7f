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

"""Per-turn user state analysis.

Builds the ``UserState`` that ``orchestrate`` consumes from the new message,
the last few conversation turns and the capability currently in use.

Pipeline:
1. Quick check - regexes for unmistakable signals ("i give up", "just tell
   me") skip the classifier entirely
2. Classifier - an injected async completion callable returns a JSON state
   analysis, parsed with ``UserState.from_dict``
3. Post-processing - turn counting, intent change detection, progression
   pattern and suggested capability are derived from the previous state so
   they do not depend on the classifier getting them right

The monitor keeps no state of its own; the caller passes the previous
``UserState`` back in each turn. Any classifier failure yields the previous
state (or the default state on the first turn).
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import replace
from typing import Any, Mapping, Optional, Sequence

from tutor_orchestrator.agent.intent_router import IntentRouter, parse_json_reply
from tutor_orchestrator.agent.protocols import CompletionFn
from tutor_orchestrator.agent.user_state import (
    DepthState,
    EngagementDepth,
    ProgressionPattern,
    Sentiment,
    SentimentType,
    UserState,
)
from tutor_orchestrator.config.settings import OrchestratorSettings, get_settings
from tutor_orchestrator.core.errors import ClassifierError, describe_exception

logger = logging.getLogger(__name__)

GIVE_UP_PATTERN = re.compile(r"i give up|hate this|this is impossible", re.IGNORECASE)
QUICK_ANSWER_PATTERN = re.compile(r"^(just tell me|quick answer|tl;?dr)", re.IGNORECASE)

HISTORY_TURNS = 4
HISTORY_CHARS = 200

SUPPORT_FRUSTRATION = 0.6
STUCK_FRUSTRATION = 0.6
STUCK_TURNS = 3

STATE_PROMPT = """Analyze the user's current state across multiple dimensions.

CURRENT STATE:
- Tool: {current_tool}
- Previous Intent: {previous_intent}
- Previous Depth: {previous_depth}
- Turns at depth: {turns}

Return JSON with this exact structure:
{{
  "sentiment": {{"type": "positive|neutral|curious|engaged|motivated|confused|frustrated|disengaged", "frustrationLevel": 0-1, "confidence": 0-1}},
  "intent": {{"current": "understand|create|solve|evaluate|organize|regulate|explore|interact", "changed": true|false, "changeReason": "string"}},
  "depth": {{"current": "surface|guided|deep", "requested": "surface|guided|deep", "changeIndicator": true|false}},
  "tooling": {{"suggestedTool": "string"}}
}}

Recent conversation:
{history}

Current message: "{message}"

Analyze state:"""


def _turn_field(turn: Any, name: str) -> str:
    if isinstance(turn, Mapping):
        return str(turn.get(name, ""))
    return str(getattr(turn, name, ""))


def format_history(conversation_history: Sequence[Any]) -> str:
    """Last few turns as ``role: content`` lines, each truncated."""
    lines = []
    for turn in list(conversation_history)[-HISTORY_TURNS:]:
        content = _turn_field(turn, "content")[:HISTORY_CHARS]
        lines.append(f"{_turn_field(turn, 'role')}: {content}")
    return "\n".join(lines)


class StateMonitor:
    """Derives a ``UserState`` for each turn.

    Args:
        complete: async completion callable used for full analysis; without
            one only the quick check and post-processing run
        intent_router: fills a missing suggested capability
        settings: analysis timeout
    """

    def __init__(
        self,
        complete: Optional[CompletionFn] = None,
        intent_router: Optional[IntentRouter] = None,
        settings: Optional[OrchestratorSettings] = None,
    ):
        self.settings = settings or get_settings()
        self._complete = complete
        self.intent_router = intent_router or IntentRouter(settings=self.settings)

    async def analyze(
        self,
        message: str,
        conversation_history: Sequence[Any] = (),
        current_tool: str = "",
        previous_state: Optional[UserState] = None,
    ) -> UserState:
        """Analyze one user message."""
        base = self._carry_over(previous_state, current_tool)

        quick = self.quick_state_check(message, base)
        if quick is not None:
            logger.debug("Quick state check matched, skipping classifier")
            return self._finalize(quick, previous_state, current_tool)

        if self._complete is None:
            return base

        prompt = STATE_PROMPT.format(
            current_tool=current_tool or "none",
            previous_intent=base.intent.current.value,
            previous_depth=base.depth.current.value,
            turns=base.dynamics.turns_at_current_depth,
            history=format_history(conversation_history),
            message=message,
        )

        try:
            text = await asyncio.wait_for(
                self._complete(prompt), timeout=self.settings.state_analysis_timeout_seconds
            )
            state = UserState.from_dict(parse_json_reply(text))
        except asyncio.TimeoutError:
            logger.warning(
                f"State analysis timed out after {self.settings.state_analysis_timeout_seconds}s"
            )
            return base
        except ClassifierError as e:
            logger.warning(f"State analysis returned an unusable reply: {e.message}")
            return base
        except Exception as e:
            logger.warning(f"State analysis failed: {describe_exception(e)}")
            return base

        return self._finalize(state, previous_state, current_tool)

    def quick_state_check(self, message: str, base: UserState) -> Optional[UserState]:
        """Catch only the most obvious signals; everything else goes to the classifier."""
        if GIVE_UP_PATTERN.search(message):
            return replace(
                base,
                sentiment=Sentiment(
                    type=SentimentType.FRUSTRATED, frustration_level=0.9, confidence=0.95
                ),
            )

        if QUICK_ANSWER_PATTERN.search(message.strip()):
            return replace(
                base,
                depth=DepthState(
                    current=base.depth.current,
                    requested=EngagementDepth.SURFACE,
                    change_indicator=True,
                ),
            )

        return None

    def _carry_over(self, previous: Optional[UserState], current_tool: str) -> UserState:
        """Previous state with per-turn flags cleared."""
        state = previous or UserState.default()
        return replace(
            state,
            intent=replace(state.intent, changed=False, change_reason=""),
            depth=replace(state.depth, change_indicator=False),
            tooling=replace(state.tooling, current_tool_appropriate=current_tool),
        )

    def _finalize(
        self, state: UserState, previous: Optional[UserState], current_tool: str
    ) -> UserState:
        prev = previous or UserState.default()

        # Turn counter
        if state.depth.current == prev.depth.current:
            turns = prev.dynamics.turns_at_current_depth + 1
        else:
            turns = 1

        # Intent change
        intent = state.intent
        if previous is not None and intent.current != previous.intent.current:
            reason = intent.change_reason or (
                f"Intent shifted from {previous.intent.current.value} to {intent.current.value}"
            )
            intent = replace(intent, changed=True, change_reason=reason)

        # Depth movement
        depth = state.depth
        deepening = previous is not None and state.depth.current.is_deeper_than(
            previous.depth.current
        )
        if previous is not None and depth.current != previous.depth.current:
            depth = replace(depth, change_indicator=True)

        if deepening:
            progression = ProgressionPattern.DEEPENING
        elif state.sentiment.frustration_level >= STUCK_FRUSTRATION and turns >= STUCK_TURNS:
            progression = ProgressionPattern.STUCK
        else:
            progression = ProgressionPattern.STABLE

        suggested = state.tooling.suggested_tool or self.intent_router.select_tool_for_intent(
            intent.current, depth.current
        )

        return replace(
            state,
            intent=intent,
            depth=depth,
            tooling=replace(
                state.tooling, current_tool_appropriate=current_tool, suggested_tool=suggested
            ),
            dynamics=replace(
                state.dynamics, turns_at_current_depth=turns, progression_pattern=progression
            ),
        )


def needs_emotional_support(state: UserState) -> bool:
    return state.sentiment.frustration_level >= SUPPORT_FRUSTRATION or state.sentiment.type in (
        SentimentType.FRUSTRATED,
        SentimentType.DISENGAGED,
    )


def needs_tool_switch(state: UserState) -> bool:
    """The current capability should give way to another one."""
    current = state.tooling.current_tool_appropriate
    return (
        bool(current and state.tooling.suggested_tool and current != state.tooling.suggested_tool)
        or state.intent.changed
        or state.depth.requested != state.depth.current
        or state.dynamics.progression_pattern == ProgressionPattern.STUCK
    )
