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

"""Logging setup for the orchestration engine.

Logging Levels (project convention):
- TRACE (5): Per-lookup logs (cache hits, table lookups)
- DEBUG (10): Routing decisions and per-capability results
- INFO (20): Pre-warm and eviction summaries
- WARNING (30): Recovered failures (classifier timeout, capability error)
- ERROR (40): Unexpected internal failures
"""

import logging
from typing import Any, Optional

# Custom TRACE level for very verbose logging (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

ROOT_LOGGER = "tutor_orchestrator"

# Third-party loggers to silence
NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "urllib3",
    "asyncio",
    "openai",
]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def trace(logger: logging.Logger, message: str, *args: Any) -> None:
    """Log at TRACE level (5)."""
    if logger.isEnabledFor(TRACE):
        logger.log(TRACE, message, *args)


def resolve_level(log_level: str) -> int:
    """Map a level name (including TRACE) to its numeric value."""
    level_upper = log_level.upper()
    if level_upper == "TRACE":
        return TRACE
    return getattr(logging, level_upper, logging.INFO)


def configure_logging_levels(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure package logging, silencing noisy third-party loggers.

    Args:
        log_level: Desired level for package loggers.
            Supported: TRACE (5), DEBUG, INFO, WARNING, ERROR, CRITICAL
        log_file: Optional file that also receives package logs
    """
    level = resolve_level(log_level)
    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.setLevel(level)

    if log_file and not any(
        isinstance(h, logging.FileHandler) and h.baseFilename.endswith(log_file)
        for h in package_logger.handlers
    ):
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
