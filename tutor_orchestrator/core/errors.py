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

"""Error types for the dialogue orchestration engine.

This module provides:
- Exception types for capability, classifier and configuration failures
- Error categories and severities for telemetry
- Correlation IDs so a failed capability call can be traced across logs

Nothing raised here is expected to escape ``DialogueOrchestrator.orchestrate``:
the executor turns capability errors into failed execution entries and the
detector turns classifier errors into "feature absent".
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# =============================================================================
# Error Categories
# =============================================================================


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""

    # Capability errors
    CAPABILITY_NOT_FOUND = "capability_not_found"
    CAPABILITY_EXECUTION = "capability_execution"
    CAPABILITY_TIMEOUT = "capability_timeout"

    # Classifier errors
    CLASSIFIER_FAILURE = "classifier_failure"
    CLASSIFIER_INVALID_RESPONSE = "classifier_invalid_response"

    # Configuration errors
    CONFIG_INVALID = "config_invalid"

    # System errors
    INTERNAL_ERROR = "internal_error"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# =============================================================================
# Custom Exception Types
# =============================================================================


class OrchestratorError(Exception):
    """Base exception for all orchestration errors.

    Provides structured error information including:
    - Error category and severity
    - Correlation ID for tracking
    - Recovery suggestions
    - Original exception chain
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        recovery_hint: Optional[str] = None,
        correlation_id: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.recovery_hint = recovery_hint
        self.correlation_id = correlation_id or str(uuid.uuid4())[:8]
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "correlation_id": self.correlation_id,
            "recovery_hint": self.recovery_hint,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        result = f"[{self.correlation_id}] {self.message}"
        if self.recovery_hint:
            result += f"\nRecovery hint: {self.recovery_hint}"
        return result


class CapabilityError(OrchestratorError):
    """Errors related to capability invocation."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.tool_name = tool_name
        self.details["tool_name"] = tool_name


class CapabilityNotFoundError(CapabilityError):
    """Capability name not present in the registry."""

    def __init__(self, tool_name: str, **kwargs: Any):
        super().__init__(
            f"Capability not found: {tool_name}",
            tool_name=tool_name,
            category=ErrorCategory.CAPABILITY_NOT_FOUND,
            recovery_hint="Register the capability or check the tool matrix for typos.",
            **kwargs,
        )


class CapabilityExecutionError(CapabilityError):
    """Capability raised or reported failure."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(
            message,
            tool_name=tool_name,
            category=ErrorCategory.CAPABILITY_EXECUTION,
            **kwargs,
        )


class CapabilityTimeoutError(CapabilityError):
    """Capability invocation exceeded its timeout."""

    def __init__(
        self,
        tool_name: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ):
        message = (
            f"Capability '{tool_name}' timed out after {timeout}s"
            if timeout
            else f"Capability '{tool_name}' timed out"
        )
        super().__init__(
            message,
            tool_name=tool_name,
            category=ErrorCategory.CAPABILITY_TIMEOUT,
            severity=ErrorSeverity.WARNING,
            recovery_hint="Raise tool_timeout_seconds or check the generation service.",
            **kwargs,
        )
        self.timeout = timeout
        self.details["timeout"] = timeout


class ClassifierError(OrchestratorError):
    """External classification call failed or returned garbage."""

    def __init__(
        self,
        message: str,
        classifier: Optional[str] = None,
        invalid_response: bool = False,
        **kwargs: Any,
    ):
        super().__init__(
            message,
            category=(
                ErrorCategory.CLASSIFIER_INVALID_RESPONSE
                if invalid_response
                else ErrorCategory.CLASSIFIER_FAILURE
            ),
            severity=ErrorSeverity.WARNING,
            **kwargs,
        )
        self.classifier = classifier
        self.details["classifier"] = classifier


class ConfigurationError(OrchestratorError):
    """Configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(
            message,
            category=ErrorCategory.CONFIG_INVALID,
            **kwargs,
        )
        self.config_key = config_key
        self.details["config_key"] = config_key


def describe_exception(exc: BaseException) -> str:
    """One-line description of an exception for execution entries."""
    if isinstance(exc, OrchestratorError):
        return exc.message
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
