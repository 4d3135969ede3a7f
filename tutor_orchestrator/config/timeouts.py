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

"""Centralized timeout configuration.

Usage:
    from tutor_orchestrator.config.timeouts import Timeouts

    await asyncio.wait_for(capability.execute(payload), timeout=Timeouts.CAPABILITY_DEFAULT)
"""

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class TimeoutConfig:
    """Centralized timeout configuration.

    All values are in seconds.
    Environment variables can override defaults:
        TUTOR_TIMEOUT_CAPABILITY_DEFAULT=30.0
        TUTOR_TIMEOUT_CLASSIFIER_DEFAULT=5.0
    """

    # Single capability invocation (external generation service)
    CAPABILITY_DEFAULT: float = 30.0

    # Multi-intent and route classification calls
    CLASSIFIER_DEFAULT: float = 5.0

    # Full state analysis (larger prompt, reasoning model)
    STATE_ANALYSIS: float = 60.0

    @classmethod
    def from_env(cls) -> "TimeoutConfig":
        """Create config with environment variable overrides.

        Environment variables follow the pattern TUTOR_TIMEOUT_{FIELD_NAME}.
        Example: TUTOR_TIMEOUT_CAPABILITY_DEFAULT=45.0
        """

        def get_float(name: str, default: float) -> float:
            env_key = f"TUTOR_TIMEOUT_{name}"
            value = os.environ.get(env_key)
            if value is not None:
                try:
                    return float(value)
                except ValueError:
                    pass
            return default

        return cls(
            CAPABILITY_DEFAULT=get_float("CAPABILITY_DEFAULT", cls.CAPABILITY_DEFAULT),
            CLASSIFIER_DEFAULT=get_float("CLASSIFIER_DEFAULT", cls.CLASSIFIER_DEFAULT),
            STATE_ANALYSIS=get_float("STATE_ANALYSIS", cls.STATE_ANALYSIS),
        )


# Default singleton instance with environment overrides
Timeouts = TimeoutConfig.from_env()
