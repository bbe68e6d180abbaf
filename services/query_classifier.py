"""
Query intent classification for adaptive retrieval.

HeuristicQueryClassifier is the deterministic keyword classifier used by
default and whenever the model-based classifier is unavailable.
LLMQueryClassifier asks a small chat model for the same analysis and falls
back to the heuristic result on any failure.
"""

from __future__ import annotations

import json
from typing import Optional, Protocol, Sequence, runtime_checkable

from domain.models import (
    ChatMessage,
    QueryAnalysis,
    QueryType,
    SearchStrategy,
    SummaryPriority,
)
from ports.llm_provider import LLMProviderPort
from shared_utils.constants import Defaults, LogScope
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.CLASSIFIER)


# ---------------------------------------------------------------------------
# Keyword tables (matched as lowercase substrings)
# ---------------------------------------------------------------------------

WEB_REQUIRED_KEYWORDS = (
    "current news", "latest", "recent developments", "what's happening now",
    "market trends", "stock price", "weather", "breaking news",
)

LOCAL_CONTEXT_KEYWORDS = (
    "tool stack", "tools", "what tools", "technology stack", "tech stack",
    "discussed", "mentioned", "said", "talked about", "meeting",
    "transcript", "conversation", "our discussion",
)

COMPREHENSIVE_KEYWORDS = (
    "summary", "overview", "what happened", "tell me about", "explain",
    "context", "background", "history", "all about", "everything",
)

SPECIFIC_KEYWORDS = (
    "when did", "who said", "what time", "specific", "exact", "particular",
    "find", "search", "locate", "show me", "which", "what is",
)

SUMMARY_PREFERRED_KEYWORDS = (
    "tool stack", "technology stack", "tech stack", "tools used", "what tools",
    "overview", "summary", "main points", "key topics", "decisions made",
    "action items", "outcomes", "conclusions",
)

TRANSCRIPT_PREFERRED_KEYWORDS = (
    "who said", "exact words", "quote", "specifically said", "mentioned",
    "when did", "what time", "conversation", "discussion details",
)

_STRATEGY_REASONS = {
    SearchStrategy.LOCAL_ONLY: "can be answered from meeting context",
    SearchStrategy.WEB_REQUIRED: "requires web search",
    SearchStrategy.LOCAL_FIRST: "should try local context first",
}


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


@runtime_checkable
class QueryClassifier(Protocol):
    """Anything that turns a query into a QueryAnalysis."""

    async def classify(self, query: str) -> QueryAnalysis:
        ...


# ---------------------------------------------------------------------------
# Heuristic classifier
# ---------------------------------------------------------------------------

class HeuristicQueryClassifier:
    """Keyword-based classifier. Pure and deterministic."""

    def analyze(self, query: str) -> QueryAnalysis:
        text = query.lower()

        if _contains_any(text, WEB_REQUIRED_KEYWORDS):
            strategy = SearchStrategy.WEB_REQUIRED
        elif _contains_any(text, LOCAL_CONTEXT_KEYWORDS):
            strategy = SearchStrategy.LOCAL_ONLY
        else:
            strategy = SearchStrategy.LOCAL_FIRST

        if _contains_any(text, COMPREHENSIVE_KEYWORDS):
            query_type = QueryType.COMPREHENSIVE
        elif _contains_any(text, SPECIFIC_KEYWORDS):
            query_type = QueryType.SPECIFIC
        else:
            query_type = QueryType.TARGETED

        # First matching rule wins
        if _contains_any(text, SUMMARY_PREFERRED_KEYWORDS):
            priority, threshold = SummaryPriority.HIGH, 0.25
        elif _contains_any(text, TRANSCRIPT_PREFERRED_KEYWORDS):
            priority, threshold = SummaryPriority.LOW, 0.40
        elif query_type is QueryType.COMPREHENSIVE:
            priority, threshold = SummaryPriority.HIGH, 0.25
        elif query_type is QueryType.SPECIFIC:
            priority, threshold = SummaryPriority.MEDIUM, 0.35
        else:
            priority, threshold = SummaryPriority.MEDIUM, Defaults.DEFAULT_THRESHOLD

        return QueryAnalysis(
            type=query_type,
            search_strategy=strategy,
            summary_priority=priority,
            adaptive_threshold=threshold,
            reasoning=(
                f"Query appears to be {query_type.value} and "
                f"{_STRATEGY_REASONS[strategy]}. "
                f"Priority: {priority.value} summaries, threshold: {threshold}"
            ),
        )

    async def classify(self, query: str) -> QueryAnalysis:
        return self.analyze(query)


# ---------------------------------------------------------------------------
# LLM classifier
# ---------------------------------------------------------------------------

ANALYSIS_PROMPT = """Analyze this user query to determine the optimal retrieval strategy.

Consider:
1. Query type: comprehensive (broad overview), targeted (specific topic), or specific (exact detail)
2. Search strategy: local_only (meeting context), local_first (try local then web), web_required (external info needed)
3. Summary priority: high (summaries most useful), medium (balanced), low (transcripts preferred)
4. Similarity threshold: 0.2-0.5 (lower = more results, higher = more precise)

Respond with JSON only:
{"type": "comprehensive|targeted|specific", "search_strategy": "local_only|local_first|web_required", "summary_priority": "high|medium|low", "adaptive_threshold": 0.3, "reasoning": "brief explanation"}"""


class LLMQueryClassifier:
    """Model-based classifier with the heuristic classifier as fallback."""

    def __init__(
        self,
        *,
        llm: LLMProviderPort,
        fallback: Optional[HeuristicQueryClassifier] = None,
        timeout: float = 10.0,
    ) -> None:
        self._llm = llm
        self._fallback = fallback or HeuristicQueryClassifier()
        self._timeout = timeout

    async def classify(self, query: str) -> QueryAnalysis:
        try:
            raw = await self._llm.complete(
                ANALYSIS_PROMPT,
                [ChatMessage(role="user", content=f'Query: "{query}"')],
                max_tokens=300,
                temperature=0.1,
                timeout=self._timeout,
            )
            analysis = self._parse(raw)
        except Exception as exc:
            logger.warning(
                "llm_classification_failed",
                model_id=getattr(self._llm, "model_id", None),
                error=str(exc),
            )
            return self._fallback.analyze(query)

        logger.info(
            "llm_classification",
            type=analysis.type.value,
            strategy=analysis.search_strategy.value,
            priority=analysis.summary_priority.value,
            threshold=analysis.adaptive_threshold,
        )
        return analysis

    @staticmethod
    def _parse(raw: str) -> QueryAnalysis:
        """Parse the model reply; invalid enum values take their defaults.

        Raises:
            ValueError: If the reply holds no JSON object.
        """
        start, end = raw.find("{"), raw.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("classifier reply contains no JSON object")
        data = json.loads(raw[start : end + 1])

        def _enum(enum_cls, value, default):
            try:
                return enum_cls(str(value).lower())
            except ValueError:
                return default

        try:
            threshold = float(data.get("adaptive_threshold", Defaults.DEFAULT_THRESHOLD))
        except (TypeError, ValueError):
            threshold = Defaults.DEFAULT_THRESHOLD

        return QueryAnalysis(
            type=_enum(QueryType, data.get("type"), QueryType.TARGETED),
            search_strategy=_enum(
                SearchStrategy, data.get("search_strategy"), SearchStrategy.LOCAL_FIRST
            ),
            summary_priority=_enum(
                SummaryPriority, data.get("summary_priority"), SummaryPriority.MEDIUM
            ),
            adaptive_threshold=max(
                Defaults.MIN_THRESHOLD, min(Defaults.MAX_THRESHOLD, threshold)
            ),
            reasoning=str(data.get("reasoning") or "LLM analysis completed"),
        )
