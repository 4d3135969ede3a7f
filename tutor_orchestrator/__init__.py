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

"""
Tutor Orchestrator - turn-by-turn dialogue orchestration for an adaptive tutor.

Given a learner's message and a model of their cognitive and emotional
state, decides which response capabilities to invoke (single, handoff,
chain, parallel or fallback), runs them, and learns which capabilities
each session is likely to need next.

Usage:
    from tutor_orchestrator import UserState, create_orchestrator

    orchestrator = create_orchestrator({"quick_answer": quick_answer_fn})
    result = await orchestrator.orchestrate(message, state, previous, "session-1")
    print(result.final_response)
"""

__version__ = "0.1.0"
__author__ = "Vijaykumar Singh"
__email__ = "singhvjd@gmail.com"
__license__ = "Apache-2.0"

from tutor_orchestrator.agent import (
    CapabilityRegistry,
    DialogueOrchestrator,
    MultiToolResult,
    OrchestrationPattern,
    PatternType,
    StateMonitor,
    ToolExecution,
    UserState,
    create_orchestrator,
)
from tutor_orchestrator.config import OrchestratorSettings, get_settings
from tutor_orchestrator.core import OrchestratorError, configure_logging_levels

__all__ = [
    "__version__",
    "CapabilityRegistry",
    "DialogueOrchestrator",
    "MultiToolResult",
    "OrchestrationPattern",
    "OrchestratorError",
    "OrchestratorSettings",
    "PatternType",
    "StateMonitor",
    "ToolExecution",
    "UserState",
    "configure_logging_levels",
    "create_orchestrator",
    "get_settings",
]
