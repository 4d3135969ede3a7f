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

"""Multi-intent classification for the parallel pattern.

Two interchangeable implementations of ``IntentClassifier``:

- KeywordIntentClassifier: fast, deterministic, always available. Matches
  word-boundary keywords and reports intents in first-mention order.
- CompletionIntentClassifier: asks a language model (any async
  ``prompt -> text`` callable) for a comma-separated label list.

Both only ever report labels from ``LearningIntent``. Timeouts and failure
recovery are the caller's job (see PatternDetector).

Example Usage:
    classifier = KeywordIntentClassifier()
    await classifier.detect_intents("Explain entropy and help me solve this problem")
    # ['understand', 'solve']
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from tutor_orchestrator.agent.protocols import CompletionFn
from tutor_orchestrator.agent.user_state import LearningIntent
from tutor_orchestrator.core.errors import ClassifierError

logger = logging.getLogger(__name__)

VALID_INTENTS = frozenset(i.value for i in LearningIntent)

# Keyword -> intent. Multi-word phrases are matched before single words.
INTENT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    LearningIntent.UNDERSTAND.value: (
        "explain",
        "understand",
        "what is",
        "what are",
        "how does",
        "why does",
        "meaning of",
        "define",
    ),
    LearningIntent.CREATE.value: ("write", "draft", "create", "compose", "essay", "outline"),
    LearningIntent.SOLVE.value: ("solve", "fix", "debug", "calculate", "work through", "problem"),
    LearningIntent.EVALUATE.value: ("evaluate", "compare", "decide", "choose", "review", "assess"),
    LearningIntent.ORGANIZE.value: ("plan", "organize", "schedule", "prioritize", "timeline"),
    LearningIntent.REGULATE.value: ("anxious", "stressed", "overwhelmed", "focus", "motivation"),
    LearningIntent.EXPLORE.value: ("explore", "discover", "investigate", "research", "curious about"),
    LearningIntent.INTERACT.value: ("discuss", "debate", "talk about", "study group"),
}

# "don't explain" should not count as an explain request
NEGATION_PATTERN = re.compile(r"\b(?:don'?t|do not|no need to|without)\s+(?:\w+\s+)?$")


@dataclass
class KeywordMatch:
    """Details of a keyword match for debugging."""

    keyword: str
    intent: str
    position: int
    negated: bool = False


class KeywordIntentClassifier:
    """Deterministic keyword-based multi-intent detection."""

    def __init__(self, keywords: Optional[Dict[str, Iterable[str]]] = None):
        table = keywords or INTENT_KEYWORDS
        self._patterns: List[Tuple[str, str, re.Pattern[str]]] = []
        for intent, words in table.items():
            if intent not in VALID_INTENTS:
                raise ValueError(f"Unknown intent in keyword table: {intent}")
            for word in sorted(words, key=len, reverse=True):
                pattern = re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)
                self._patterns.append((intent, word, pattern))

    def find_matches(self, message: str) -> List[KeywordMatch]:
        """All keyword hits, ordered by position in the message."""
        matches: List[KeywordMatch] = []
        for intent, word, pattern in self._patterns:
            for hit in pattern.finditer(message):
                prefix = message[max(0, hit.start() - 20) : hit.start()].lower()
                matches.append(
                    KeywordMatch(
                        keyword=word,
                        intent=intent,
                        position=hit.start(),
                        negated=bool(NEGATION_PATTERN.search(prefix)),
                    )
                )
        matches.sort(key=lambda m: (m.position, -len(m.keyword)))
        return matches

    async def detect_intents(self, message: str) -> List[str]:
        return self.classify(message)

    def classify(self, message: str) -> List[str]:
        """Synchronous form of ``detect_intents``."""
        intents: List[str] = []
        for match in self.find_matches(message):
            if match.negated or match.intent in intents:
                continue
            intents.append(match.intent)
        return intents


MULTI_INTENT_PROMPT = """Analyze this query and identify all learning intents present. Return only the intent labels separated by commas.

Query: "{message}"

Possible intents: understand, create, solve, evaluate, organize, regulate, explore, interact

Return format: intent1,intent2,intent3"""


def parse_intent_labels(text: str) -> List[str]:
    """Parse a comma/newline separated label list, keeping known intents once."""
    intents: List[str] = []
    for raw in re.split(r"[,\n]", text or ""):
        label = raw.strip().strip("`'\".-* ").lower()
        if label in VALID_INTENTS and label not in intents:
            intents.append(label)
    return intents


class CompletionIntentClassifier:
    """Language-model backed multi-intent detection.

    Args:
        complete: async callable taking a prompt and returning model text
        name: label used in logs and errors
    """

    def __init__(self, complete: CompletionFn, name: str = "completion"):
        self._complete = complete
        self.name = name

    async def detect_intents(self, message: str) -> List[str]:
        try:
            text = await self._complete(MULTI_INTENT_PROMPT.format(message=message))
        except Exception as e:
            raise ClassifierError(
                f"Multi-intent classification failed: {e}", classifier=self.name, cause=e
            ) from e

        intents = parse_intent_labels(text)
        logger.debug(f"[{self.name}] detected intents {intents} from {text!r}")
        return intents
