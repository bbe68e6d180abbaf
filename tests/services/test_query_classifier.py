"""
Tests for services.query_classifier.
"""

import pytest

from domain.models import QueryType, SearchStrategy, SummaryPriority
from services.query_classifier import (
    HeuristicQueryClassifier,
    LLMQueryClassifier,
    QueryClassifier,
)


@pytest.fixture()
def heuristic() -> HeuristicQueryClassifier:
    return HeuristicQueryClassifier()


class TestHeuristicQueryClassifier:
    @pytest.mark.parametrize(
        "query, query_type, strategy",
        [
            ("Give me a summary of the last meeting", QueryType.COMPREHENSIVE, SearchStrategy.LOCAL_ONLY),
            ("Who said we should delay the launch?", QueryType.SPECIFIC, SearchStrategy.LOCAL_ONLY),
            ("What is the latest weather in London", QueryType.SPECIFIC, SearchStrategy.WEB_REQUIRED),
            ("How do we handle retries", QueryType.TARGETED, SearchStrategy.LOCAL_FIRST),
        ],
    )
    def test_type_and_strategy(self, heuristic, query, query_type, strategy) -> None:
        analysis = heuristic.analyze(query)
        assert analysis.type is query_type
        assert analysis.search_strategy is strategy

    def test_summary_keywords_prefer_summaries(self, heuristic) -> None:
        analysis = heuristic.analyze("What tools are in our tech stack?")
        assert analysis.summary_priority is SummaryPriority.HIGH
        assert analysis.adaptive_threshold == 0.25

    def test_transcript_keywords_prefer_transcripts(self, heuristic) -> None:
        analysis = heuristic.analyze("Quote the exact words Bob used")
        assert analysis.summary_priority is SummaryPriority.LOW
        assert analysis.adaptive_threshold == 0.40

    def test_specific_without_priority_keywords(self, heuristic) -> None:
        analysis = heuristic.analyze("Which database won?")
        assert analysis.summary_priority is SummaryPriority.MEDIUM
        assert analysis.adaptive_threshold == 0.35

    def test_default_threshold(self, heuristic) -> None:
        analysis = heuristic.analyze("Deployment plans")
        assert analysis.adaptive_threshold == 0.3
        assert "targeted" in analysis.reasoning

    def test_is_case_insensitive(self, heuristic) -> None:
        assert heuristic.analyze("SUMMARY please").type is QueryType.COMPREHENSIVE

    @pytest.mark.asyncio
    async def test_classify_matches_analyze(self, heuristic) -> None:
        assert await heuristic.classify("overview") == heuristic.analyze("overview")

    def test_satisfies_protocol(self, heuristic) -> None:
        assert isinstance(heuristic, QueryClassifier)


class TestLLMQueryClassifier:
    @pytest.mark.asyncio
    async def test_parses_model_reply(self, make_llm) -> None:
        reply = (
            'Sure: {"type": "specific", "search_strategy": "web_required", '
            '"summary_priority": "low", "adaptive_threshold": 0.45, "reasoning": "needs news"}'
        )
        llm = make_llm("classifier", chunks=(reply,))
        analysis = await LLMQueryClassifier(llm=llm).classify("latest news?")

        assert analysis.type is QueryType.SPECIFIC
        assert analysis.search_strategy is SearchStrategy.WEB_REQUIRED
        assert analysis.summary_priority is SummaryPriority.LOW
        assert analysis.adaptive_threshold == 0.45
        assert llm.calls[0]["messages"][0].content == 'Query: "latest news?"'

    @pytest.mark.asyncio
    async def test_threshold_clamped_and_bad_enums_defaulted(self, make_llm) -> None:
        reply = '{"type": "vague", "search_strategy": "LOCAL_ONLY", "adaptive_threshold": 0.9}'
        analysis = await LLMQueryClassifier(llm=make_llm(chunks=(reply,))).classify("q")

        assert analysis.type is QueryType.TARGETED
        assert analysis.search_strategy is SearchStrategy.LOCAL_ONLY
        assert analysis.adaptive_threshold == 0.5
        assert analysis.reasoning == "LLM analysis completed"

    @pytest.mark.asyncio
    async def test_non_numeric_threshold_uses_default(self, make_llm) -> None:
        reply = '{"type": "targeted", "adaptive_threshold": "high"}'
        analysis = await LLMQueryClassifier(llm=make_llm(chunks=(reply,))).classify("q")
        assert analysis.adaptive_threshold == 0.3

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self, make_llm, heuristic) -> None:
        classifier = LLMQueryClassifier(llm=make_llm(chunks=("I cannot help",)))
        query = "Give me a summary"
        assert await classifier.classify(query) == heuristic.analyze(query)

    @pytest.mark.asyncio
    async def test_model_error_falls_back(self, make_llm, overloaded_error, heuristic) -> None:
        classifier = LLMQueryClassifier(llm=make_llm(error=overloaded_error))
        query = "Who said that?"
        assert await classifier.classify(query) == heuristic.analyze(query)
