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

"""YAML-backed capability routing tables.

Loads ``tool_matrix.yaml``:
- intent x depth -> capability matrix used by the intent router
- depth progression chains used by the chain pattern
- fallback capabilities used under high frustration

Features:
- TTL caching of parsed YAML
- Fallback to built-in defaults if the file is missing or unreadable
- Type-safe dataclass for the loaded tables
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from tutor_orchestrator.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Configuration file paths
CONFIG_DIR = Path(__file__).parent
TOOL_MATRIX_FILE = CONFIG_DIR / "tool_matrix.yaml"

# Cache settings
_cache_ttl = 300  # 5 minutes
_cache_timestamps: Dict[str, float] = {}
_cache_data: Dict[str, Any] = {}

DEFAULT_TOOL = "socratic_tool"


@dataclass(frozen=True)
class ToolMatrix:
    """Routing tables for capability selection."""

    default_tool: str = DEFAULT_TOOL
    intent_matrix: Dict[str, Dict[str, str]] = field(default_factory=dict)
    depth_progression: Dict[str, Dict[str, Tuple[str, ...]]] = field(default_factory=dict)
    fallback_tools: Tuple[str, ...] = ("quick_answer", "practical_guide")

    def tool_for(self, intent: str, depth: str) -> Optional[str]:
        """Look up the capability for an intent/depth cell."""
        return self.intent_matrix.get(intent, {}).get(depth)

    def progression_for(self, from_depth: str, to_depth: str, intent: str) -> Tuple[str, ...]:
        """Ordered chain for a depth progression, empty if not tabulated."""
        return self.depth_progression.get(f"{from_depth}_to_{to_depth}", {}).get(intent, ())


def _load_yaml_cached(file_path: Path, cache_key: str) -> Optional[Dict[str, Any]]:
    """Load YAML file with caching.

    Args:
        file_path: Path to YAML file
        cache_key: Key for caching

    Returns:
        Parsed YAML data or None if file doesn't exist
    """
    now = time.time()

    if cache_key in _cache_data:
        cached_time = _cache_timestamps.get(cache_key, 0)
        if now - cached_time < _cache_ttl:
            return _cache_data[cache_key]

    if not file_path.exists():
        logger.debug(f"Config file not found: {file_path}")
        return None

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        _cache_data[cache_key] = data
        _cache_timestamps[cache_key] = now
        return data

    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load {file_path}: {e}")
        return None


def invalidate_config_cache() -> None:
    """Invalidate all configuration caches (for hot-reload)."""
    _cache_data.clear()
    _cache_timestamps.clear()


def load_tool_matrix(path: Optional[Path] = None) -> ToolMatrix:
    """Load the capability routing tables.

    Args:
        path: Optional override for the YAML location

    Returns:
        ToolMatrix, built-in defaults when the file is missing

    Raises:
        ConfigurationError: if the file parses but is not a mapping of tables
    """
    file_path = Path(path) if path else TOOL_MATRIX_FILE
    data = _load_yaml_cached(file_path, f"tool_matrix:{file_path}")

    if not data:
        return _get_default_tool_matrix()

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Tool matrix must be a mapping, got {type(data).__name__}",
            config_key=str(file_path),
        )
    for key in ("intent_matrix", "depth_progression"):
        if not isinstance(data.get(key) or {}, dict):
            raise ConfigurationError(f"{key} must be a mapping", config_key=key)

    progression = {
        key: {intent: tuple(tools or ()) for intent, tools in (by_intent or {}).items()}
        for key, by_intent in (data.get("depth_progression") or {}).items()
    }
    fallback: List[str] = data.get("fallback_tools") or ["quick_answer", "practical_guide"]

    return ToolMatrix(
        default_tool=data.get("default_tool", DEFAULT_TOOL),
        intent_matrix={
            intent: dict(cells or {}) for intent, cells in (data.get("intent_matrix") or {}).items()
        },
        depth_progression=progression,
        fallback_tools=tuple(fallback),
    )


def _get_default_tool_matrix() -> ToolMatrix:
    """Get default routing tables (fallback if YAML missing)."""
    return ToolMatrix(
        default_tool=DEFAULT_TOOL,
        intent_matrix={
            "understand": {
                "surface": "quick_answer",
                "guided": "socratic_tool",
                "deep": "concept_mapper",
            },
            "create": {
                "surface": "writing_assistant",
                "guided": "project_ideation_tool",
                "deep": "creative_exploration_tool",
            },
            "solve": {
                "surface": "problem_solver",
                "guided": "socratic_tool",
                "deep": "breakthrough_tool",
            },
            "evaluate": {
                "surface": "evaluator_tool",
                "guided": "review_tool",
                "deep": "critical_analysis_tool",
            },
        },
        depth_progression={
            "surface_to_guided": {"understand": ("quick_answer", "socratic_tool")},
            "guided_to_deep": {"understand": ("socratic_tool", "concept_mapper")},
            "surface_to_deep": {
                "understand": ("quick_answer", "socratic_tool", "concept_mapper"),
            },
        },
        fallback_tools=("quick_answer", "practical_guide"),
    )
