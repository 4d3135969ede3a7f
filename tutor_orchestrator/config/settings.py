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

"""Configuration management for the orchestration engine."""

import os
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tutor_orchestrator.config.timeouts import Timeouts


class OrchestratorSettings(BaseSettings):
    """Main orchestration settings.

    Every field can be overridden with a ``TUTOR_`` prefixed environment
    variable, e.g. ``TUTOR_FRUSTRATION_THRESHOLD=0.8``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUTOR_",
        env_file=".env" if not os.getenv("TUTOR_SKIP_ENV_FILE") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Pattern detection
    # Fixtures place the switch to direct answers between 0.7 and 0.8
    frustration_threshold: float = 0.7
    default_tool: str = "socratic_tool"
    fallback_tools: List[str] = Field(default_factory=lambda: ["quick_answer", "practical_guide"])
    tool_matrix_path: Optional[str] = None

    # Execution
    tool_timeout_seconds: float = Timeouts.CAPABILITY_DEFAULT
    classifier_timeout_seconds: float = Timeouts.CLASSIFIER_DEFAULT
    state_analysis_timeout_seconds: float = Timeouts.STATE_ANALYSIS
    max_concurrent_tools: int = 5

    # Optimizer
    max_patterns_per_session: int = 50
    prediction_top_k: int = 3
    cache_max_age_ms: int = 3_600_000
    prewarm_predictions: bool = True

    # Intent router cache
    route_cache_ttl_seconds: float = 300.0
    route_cache_max_size: int = 256
    route_confidence_threshold: float = 0.6

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("frustration_threshold", "route_confidence_threshold")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        """Thresholds compare against [0,1] scores."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {v}")
        return v

    @field_validator("fallback_tools")
    @classmethod
    def validate_fallback_tools(cls, v: List[str]) -> List[str]:
        """Fallback needs at least one capability to try."""
        cleaned = [name.strip() for name in v if name and name.strip()]
        if not cleaned:
            raise ValueError("fallback_tools must name at least one capability")
        return cleaned

    @field_validator("max_concurrent_tools", "max_patterns_per_session", "prediction_top_k")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be >= 1, got {v}")
        return v

    @field_validator("cache_max_age_ms")
    @classmethod
    def validate_cache_age(cls, v: int) -> int:
        """0 evicts every pre-warm entry once the next turn has run."""
        if v < 0:
            raise ValueError(f"cache_max_age_ms must be >= 0, got {v}")
        return v


_settings: Optional[OrchestratorSettings] = None


def get_settings() -> OrchestratorSettings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = OrchestratorSettings()
    return _settings


def load_settings() -> OrchestratorSettings:
    """Load fresh settings from the environment.

    Returns:
        OrchestratorSettings instance
    """
    return OrchestratorSettings()
