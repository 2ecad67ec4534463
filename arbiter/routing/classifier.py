"""
Task Classifier
===============

Derives a TaskClassification from a request. Pure and deterministic: the
same request always yields the same classification, so routing decisions
are reproducible and cacheable.

Keyword data lives in ``KeywordTables`` and is injected at construction.
"""

import math
import re
from dataclasses import dataclass, field
from functools import lru_cache

from arbiter.core.types import (
    QualityRequirement,
    RoutingRequest,
    TaskCategory,
    TaskClassification,
    TaskComplexity,
    TimeConstraint,
    TokenEstimate,
)

# =============================================================================
# Constants
# =============================================================================

CHARS_PER_TOKEN = 4
DEFAULT_OUTPUT_TOKENS = 2048

TRIVIAL_MAX_INPUT_TOKENS = 100
COMPLEX_MIN_INPUT_TOKENS = 10_000
EXPERT_MIN_INPUT_TOKENS = 50_000

BASE_CONFIDENCE = 0.85


# =============================================================================
# Keyword Tables
# =============================================================================


@dataclass(frozen=True)
class KeywordTables:
    """
    Keyword data driving classification.

    Attributes:
        complexity: Level -> keywords; levels are checked from most to least demanding
        category: Category -> keywords; checked in mapping order, first match wins
        reasoning: Keywords that mark a request as needing reasoning
    """

    complexity: dict[TaskComplexity, tuple[str, ...]] = field(default_factory=dict)
    category: dict[TaskCategory, tuple[str, ...]] = field(default_factory=dict)
    reasoning: tuple[str, ...] = ()


DEFAULT_KEYWORD_TABLES = KeywordTables(
    complexity={
        TaskComplexity.TRIVIAL: ("hello", "hi", "test", "ping"),
        TaskComplexity.SIMPLE: ("explain", "what is", "define", "simple", "basic"),
        TaskComplexity.MEDIUM: ("write code", "create", "implement", "function", "class"),
        TaskComplexity.COMPLEX: (
            "architecture",
            "design system",
            "refactor",
            "optimize",
            "review",
        ),
        TaskComplexity.EXPERT: (
            "microservices",
            "distributed",
            "scalable",
            "enterprise",
            "security audit",
        ),
    },
    category={
        TaskCategory.CODE_GENERATION: ("write", "create", "generate", "code", "function"),
        TaskCategory.CODE_REVIEW: ("review", "check", "analyze"),
        TaskCategory.DEBUGGING: ("debug", "fix", "error", "bug"),
        TaskCategory.ARCHITECTURE: ("design", "architecture", "structure"),
        TaskCategory.TESTING: ("test", "unit test", "testing", "spec"),
        TaskCategory.DOCUMENTATION: ("document", "explain", "describe"),
        TaskCategory.OPTIMIZATION: ("optimize", "improve", "performance"),
        TaskCategory.SECURITY: ("security", "vulnerability", "secure"),
    },
    reasoning=("why", "how", "explain", "design", "architecture"),
)


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(keyword.lower())}(?!\w)")


def _matches_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(_keyword_pattern(k).search(text) for k in keywords)


# =============================================================================
# Classifier
# =============================================================================


class TaskClassifier:
    """
    Usage:
        classifier = TaskClassifier()
        classification = classifier.classify(request)
        classification.complexity  # TaskComplexity.MEDIUM
    """

    def __init__(self, keyword_tables: KeywordTables | None = None):
        self.tables = keyword_tables or DEFAULT_KEYWORD_TABLES

    @staticmethod
    def request_text(request: RoutingRequest) -> str:
        parts = [request.system_prompt or "", request.task_description or "", request.prompt]
        return " ".join(p for p in parts if p).lower()

    @staticmethod
    def estimate_tokens(request: RoutingRequest, text: str) -> TokenEstimate:
        return TokenEstimate(
            input=math.ceil(len(text) / CHARS_PER_TOKEN),
            output=request.max_tokens or DEFAULT_OUTPUT_TOKENS,
        )

    def _keyword_complexity(self, text: str) -> TaskComplexity | None:
        for level in sorted(self.tables.complexity, key=lambda c: c.rank, reverse=True):
            if _matches_any(text, self.tables.complexity[level]):
                return level
        return None

    def detect_complexity(self, text: str, input_tokens: int) -> TaskComplexity:
        if input_tokens > EXPERT_MIN_INPUT_TOKENS:
            return TaskComplexity.EXPERT
        if input_tokens > COMPLEX_MIN_INPUT_TOKENS:
            return TaskComplexity.COMPLEX
        if input_tokens < TRIVIAL_MAX_INPUT_TOKENS:
            return TaskComplexity.TRIVIAL
        return self._keyword_complexity(text) or TaskComplexity.MEDIUM

    def detect_category(self, text: str) -> TaskCategory:
        for category, keywords in self.tables.category.items():
            if _matches_any(text, keywords):
                return category
        return TaskCategory.GENERAL

    def classify(self, request: RoutingRequest) -> TaskClassification:
        text = self.request_text(request)
        tokens = self.estimate_tokens(request, text)
        complexity = self.detect_complexity(text, tokens.input)

        if request.stream:
            time_constraint = TimeConstraint.REALTIME
        elif request.metadata.get("batch"):
            time_constraint = TimeConstraint.BATCH
        else:
            time_constraint = TimeConstraint.NORMAL

        if complexity >= TaskComplexity.COMPLEX:
            quality = QualityRequirement.HIGH
        elif complexity <= TaskComplexity.SIMPLE:
            quality = QualityRequirement.LOW
        else:
            quality = QualityRequirement.MEDIUM

        return TaskClassification(
            complexity=complexity,
            category=self.detect_category(text),
            estimated_tokens=tokens,
            requires_reasoning=_matches_any(text, self.tables.reasoning),
            time_constraint=time_constraint,
            quality_requirement=quality,
            confidence=BASE_CONFIDENCE,
        )


def create_classifier(keyword_tables: KeywordTables | None = None) -> TaskClassifier:
    return TaskClassifier(keyword_tables)
