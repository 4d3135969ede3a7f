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

"""Query pre-processing ahead of pattern detection.

``optimize`` normalises whitespace and is free of side effects.
``analyze`` decides which upstream steps (context rewriting, retrieval) a
message can skip, so callers avoid needless model calls for greetings,
acknowledgements and self-contained questions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

_WHITESPACE = re.compile(r"\s+")

SELF_CONTAINED_PATTERNS = (
    re.compile(r"^(what|who|when|where|why|how) (is|are|was|were) \w+\??$", re.IGNORECASE),
    re.compile(r"^define \w+$", re.IGNORECASE),
    re.compile(r"^explain \w+$", re.IGNORECASE),
    re.compile(r"^list \w+$", re.IGNORECASE),
    re.compile(r"^thank", re.IGNORECASE),
    re.compile(r"^(yes|no|okay|sure|got it)", re.IGNORECASE),
)
EXPLICIT_CONTEXT_PATTERNS = (
    re.compile(r"in the (previous|last|above)", re.IGNORECASE),
    re.compile(r"as (i|we) (mentioned|discussed)", re.IGNORECASE),
)
# Longer messages tend to carry their own context
SELF_CONTAINED_LENGTH = 50

META_PATTERNS = (
    re.compile(r"^(hi|hello|hey|goodbye|bye|thanks)", re.IGNORECASE),
    re.compile(r"how are you", re.IGNORECASE),
    re.compile(r"what can you (do|help)", re.IGNORECASE),
    re.compile(r"^(yes|no|okay|sure|got it)", re.IGNORECASE),
    re.compile(r"^nevermind", re.IGNORECASE),
    re.compile(r"^sorry", re.IGNORECASE),
    re.compile(r"^i (don't|do not) understand your (question|response)", re.IGNORECASE),
)
NO_RETRIEVAL_PATTERNS = (
    re.compile(r"make flashcards", re.IGNORECASE),
    re.compile(r"create a (plan|schedule)", re.IGNORECASE),
    re.compile(r"quiz me", re.IGNORECASE),
    re.compile(r"test me", re.IGNORECASE),
    re.compile(r"help me reflect", re.IGNORECASE),
    re.compile(r"different (approach|way)", re.IGNORECASE),
)


@dataclass(frozen=True)
class OptimizationDecision:
    skip_context_rewrite: bool
    skip_retrieval: bool
    reasoning: str


class QueryOptimizer:
    """Side-effect free query normalisation and skip-step analysis."""

    def optimize(self, query: str, context: Optional[Mapping[str, Any]] = None) -> str:
        """Collapse runs of whitespace and trim the ends."""
        return _WHITESPACE.sub(" ", query or "").strip()

    def analyze(self, message: str, prior_turns: Sequence[Any] = ()) -> OptimizationDecision:
        normalized = self.optimize(message)
        skip_rewrite = self.can_skip_context_rewrite(normalized, bool(prior_turns))
        skip_retrieval = self.can_skip_retrieval(normalized)
        return OptimizationDecision(
            skip_context_rewrite=skip_rewrite,
            skip_retrieval=skip_retrieval,
            reasoning=_explain(skip_rewrite, skip_retrieval),
        )

    def can_skip_context_rewrite(self, message: str, has_context: bool) -> bool:
        if not has_context:
            return True
        if any(p.search(message) for p in SELF_CONTAINED_PATTERNS):
            return True
        return len(message) > SELF_CONTAINED_LENGTH or any(
            p.search(message) for p in EXPLICIT_CONTEXT_PATTERNS
        )

    def can_skip_retrieval(self, message: str) -> bool:
        if any(p.search(message) for p in META_PATTERNS):
            return True
        return any(p.search(message) for p in NO_RETRIEVAL_PATTERNS)


def _explain(skip_rewrite: bool, skip_retrieval: bool) -> str:
    skipped = []
    if skip_rewrite:
        skipped.append("context rewrite (self-contained query)")
    if skip_retrieval:
        skipped.append("retrieval (no knowledge lookup needed)")
    if not skipped:
        return "Full processing required"
    return "Skipping " + " and ".join(skipped)
