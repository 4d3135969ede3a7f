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

"""Agent module - orchestrator and supporting components."""

from tutor_orchestrator.agent.capability_registry import (
    CapabilityRegistry,
    FunctionCapability,
    normalize_response,
)
from tutor_orchestrator.agent.context_manager import InMemoryContextManager
from tutor_orchestrator.agent.effectiveness import score_pattern
from tutor_orchestrator.agent.intent_classifier import (
    CompletionIntentClassifier,
    KeywordIntentClassifier,
)
from tutor_orchestrator.agent.intent_router import IntentRoute, IntentRouter
from tutor_orchestrator.agent.optimizer import OptimizationMetrics, Optimizer
from tutor_orchestrator.agent.orchestrator import DialogueOrchestrator, create_orchestrator
from tutor_orchestrator.agent.pattern_detector import PatternDetector
from tutor_orchestrator.agent.pattern_executor import (
    PatternExecutionConfig,
    PatternExecutor,
    create_pattern_executor,
)
from tutor_orchestrator.agent.query_optimizer import OptimizationDecision, QueryOptimizer
from tutor_orchestrator.agent.state_monitor import (
    StateMonitor,
    needs_emotional_support,
    needs_tool_switch,
)
from tutor_orchestrator.agent.types import (
    CapabilityInput,
    CapabilityResponse,
    MultiToolResult,
    OrchestrationPattern,
    PatternType,
    ResultMetadata,
    SessionContext,
    ToolExecution,
)
from tutor_orchestrator.agent.user_state import (
    DepthState,
    Dynamics,
    EngagementDepth,
    IntentState,
    LearningIntent,
    ProgressionPattern,
    Sentiment,
    SentimentType,
    ToolingState,
    UserState,
)

__all__ = [
    # Entry point
    "DialogueOrchestrator",
    "create_orchestrator",
    # Components
    "CapabilityRegistry",
    "FunctionCapability",
    "normalize_response",
    "InMemoryContextManager",
    "score_pattern",
    "CompletionIntentClassifier",
    "KeywordIntentClassifier",
    "IntentRoute",
    "IntentRouter",
    "OptimizationMetrics",
    "Optimizer",
    "PatternDetector",
    "PatternExecutionConfig",
    "PatternExecutor",
    "create_pattern_executor",
    "OptimizationDecision",
    "QueryOptimizer",
    "StateMonitor",
    "needs_emotional_support",
    "needs_tool_switch",
    # Types
    "CapabilityInput",
    "CapabilityResponse",
    "MultiToolResult",
    "OrchestrationPattern",
    "PatternType",
    "ResultMetadata",
    "SessionContext",
    "ToolExecution",
    # User state
    "DepthState",
    "Dynamics",
    "EngagementDepth",
    "IntentState",
    "LearningIntent",
    "ProgressionPattern",
    "Sentiment",
    "SentimentType",
    "ToolingState",
    "UserState",
]
