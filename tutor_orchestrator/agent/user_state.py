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

"""User state snapshot consumed by the orchestrator.

A ``UserState`` is rebuilt every turn by the state monitor and passed by
value into ``orchestrate``. All records are frozen; "changing" a state means
building a new one with ``dataclasses.replace``.

Design Principles:
    - All fields are explicitly typed
    - Immutable (frozen=True)
    - Scores validated into [0, 1] at construction
    - ``from_dict`` tolerates raw classifier payloads (camelCase, 0-10 scales)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

E = TypeVar("E", bound=Enum)


# =============================================================================
# Enumerations
# =============================================================================


class SentimentType(str, Enum):
    """Emotional state of the learner."""

    NEUTRAL = "neutral"
    POSITIVE = "positive"
    CURIOUS = "curious"
    FRUSTRATED = "frustrated"
    ENGAGED = "engaged"
    MOTIVATED = "motivated"
    CONFUSED = "confused"
    DISENGAGED = "disengaged"


class LearningIntent(str, Enum):
    """What the learner is trying to do."""

    UNDERSTAND = "understand"  # Learn, comprehend, explain
    CREATE = "create"  # Write, produce, generate
    SOLVE = "solve"  # Work through, calculate, debug
    EVALUATE = "evaluate"  # Assess, compare, decide
    ORGANIZE = "organize"  # Plan, schedule, structure
    REGULATE = "regulate"  # Reflect, adjust, cope
    EXPLORE = "explore"  # Research, discover, browse
    INTERACT = "interact"  # Discuss, collaborate


class EngagementDepth(str, Enum):
    """Ordered engagement stage: surface < guided < deep."""

    SURFACE = "surface"
    GUIDED = "guided"
    DEEP = "deep"

    @property
    def rank(self) -> int:
        return _DEPTH_ORDER.index(self)

    def is_deeper_than(self, other: "EngagementDepth") -> bool:
        return self.rank > other.rank


_DEPTH_ORDER = (EngagementDepth.SURFACE, EngagementDepth.GUIDED, EngagementDepth.DEEP)


class ProgressionPattern(str, Enum):
    """How depth has been moving across recent turns."""

    STABLE = "stable"
    DEEPENING = "deepening"
    STUCK = "stuck"


def depth_stages(from_depth: EngagementDepth, to_depth: EngagementDepth) -> tuple:
    """Stages traversed from ``from_depth`` to ``to_depth`` inclusive."""
    return _DEPTH_ORDER[from_depth.rank : to_depth.rank + 1]


def parse_enum(enum_cls: Type[E], value: Any, default: E) -> E:
    """Coerce a raw label into ``enum_cls``, falling back to ``default``."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default


def normalize_score(value: Any) -> float:
    """Normalize a raw score to [0, 1].

    Values above 1 are read as a 0-10 scale. Missing or non-numeric values
    become 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0.0
    if numeric != numeric:  # NaN
        return 0.0
    scaled = numeric / 10 if numeric > 1 else numeric
    return max(0.0, min(1.0, scaled))


def _check_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


def _get(data: Mapping[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


_FALSE_LABELS = frozenset({"", "false", "no", "none", "null", "0", "n/a"})


def parse_flag(value: Any) -> bool:
    """Read a classifier flag that may arrive as a bool, a label or free text.

    ``"false"``, ``"no"`` and similar labels are False; any other non-empty
    text (usually a reason) is True.
    """
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_LABELS
    return bool(value)


# =============================================================================
# State records
# =============================================================================


@dataclass(frozen=True)
class Sentiment:
    type: SentimentType = SentimentType.NEUTRAL
    frustration_level: float = 0.0
    confidence: float = 0.0

    def __post_init__(self) -> None:
        _check_unit("frustration_level", self.frustration_level)
        _check_unit("confidence", self.confidence)


@dataclass(frozen=True)
class IntentState:
    current: LearningIntent = LearningIntent.UNDERSTAND
    changed: bool = False
    change_reason: str = ""


@dataclass(frozen=True)
class DepthState:
    current: EngagementDepth = EngagementDepth.SURFACE
    requested: EngagementDepth = EngagementDepth.SURFACE
    change_indicator: bool = False


@dataclass(frozen=True)
class ToolingState:
    current_tool_appropriate: str = ""
    suggested_tool: str = ""


@dataclass(frozen=True)
class Dynamics:
    turns_at_current_depth: int = 0
    progression_pattern: ProgressionPattern = ProgressionPattern.STABLE

    def __post_init__(self) -> None:
        if self.turns_at_current_depth < 0:
            raise ValueError(
                f"turns_at_current_depth must be >= 0, got {self.turns_at_current_depth}"
            )


@dataclass(frozen=True)
class UserState:
    """Snapshot of the learner's state for one turn."""

    sentiment: Sentiment = field(default_factory=Sentiment)
    intent: IntentState = field(default_factory=IntentState)
    depth: DepthState = field(default_factory=DepthState)
    tooling: ToolingState = field(default_factory=ToolingState)
    dynamics: Dynamics = field(default_factory=Dynamics)

    @classmethod
    def default(cls) -> UserState:
        """Neutral starting state for a new conversation."""
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserState:
        """Build a state from a raw classifier payload.

        Accepts camelCase or snake_case keys. Unknown enum labels fall back to
        the defaults, scores are normalized, and free-text change indicators
        count as ``True``.
        """
        sentiment = data.get("sentiment") or {}
        intent = data.get("intent") or {}
        depth = data.get("depth") or {}
        tooling = data.get("tooling") or {}
        dynamics = data.get("dynamics") or {}

        current_depth = parse_enum(
            EngagementDepth, depth.get("current"), EngagementDepth.SURFACE
        )
        current_tool = _get(tooling, "currentToolAppropriate", "current_tool_appropriate", "")
        turns = _get(dynamics, "turnsAtCurrentDepth", "turns_at_current_depth", 0)
        try:
            turns = max(0, int(turns))
        except (TypeError, ValueError):
            turns = 0

        return cls(
            sentiment=Sentiment(
                type=parse_enum(SentimentType, sentiment.get("type"), SentimentType.NEUTRAL),
                frustration_level=normalize_score(
                    _get(sentiment, "frustrationLevel", "frustration_level")
                ),
                confidence=normalize_score(sentiment.get("confidence")),
            ),
            intent=IntentState(
                current=parse_enum(
                    LearningIntent, intent.get("current"), LearningIntent.UNDERSTAND
                ),
                changed=parse_flag(intent.get("changed", False)),
                change_reason=str(_get(intent, "changeReason", "change_reason", "") or ""),
            ),
            depth=DepthState(
                current=current_depth,
                requested=parse_enum(EngagementDepth, depth.get("requested"), current_depth),
                change_indicator=parse_flag(
                    _get(depth, "changeIndicator", "change_indicator", False)
                ),
            ),
            tooling=ToolingState(
                # Older classifiers report appropriateness as a bool instead of a name
                current_tool_appropriate=current_tool if isinstance(current_tool, str) else "",
                suggested_tool=str(_get(tooling, "suggestedTool", "suggested_tool", "") or ""),
            ),
            dynamics=Dynamics(
                turns_at_current_depth=turns,
                progression_pattern=parse_enum(
                    ProgressionPattern,
                    _get(dynamics, "progressionPattern", "progression_pattern"),
                    ProgressionPattern.STABLE,
                ),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used by the chat layer."""
        return {
            "sentiment": {
                "type": self.sentiment.type.value,
                "frustrationLevel": self.sentiment.frustration_level,
                "confidence": self.sentiment.confidence,
            },
            "intent": {
                "current": self.intent.current.value,
                "changed": self.intent.changed,
                "changeReason": self.intent.change_reason,
            },
            "depth": {
                "current": self.depth.current.value,
                "requested": self.depth.requested.value,
                "changeIndicator": self.depth.change_indicator,
            },
            "tooling": {
                "currentToolAppropriate": self.tooling.current_tool_appropriate,
                "suggestedTool": self.tooling.suggested_tool,
            },
            "dynamics": {
                "turnsAtCurrentDepth": self.dynamics.turns_at_current_depth,
                "progressionPattern": self.dynamics.progression_pattern.value,
            },
        }

    def progressed_from(self, previous: Optional[UserState]) -> bool:
        """True when depth moved forward relative to ``previous``."""
        if previous is None:
            return False
        return self.depth.current.is_deeper_than(previous.depth.current)
