"""
Test: rubric scoring, weighting and the AI / rule-based feedback paths.
"""
import asyncio
import json

import httpx
import pytest

from classroom_ai.errors import ParseRecoveryWarning, TransportError, ValidationError
from classroom_ai.grading_engine import (
    GradingEngine,
    extract_keywords,
    parse_ai_feedback,
    rule_based_feedback,
)
from classroom_ai.llm_client import LLMClient
from classroom_ai.schemas import CriterionScore, LLMConfig, StudentAnswer

from conftest import FakeLLMClient

ANSWER = "Sunlight drives photosynthesis."


def grade(engine, answer, **kwargs):
    kwargs.setdefault("use_ai_for_feedback", False)
    return asyncio.run(engine.grade(answer, **kwargs))


class TestKeywords:
    def test_punctuation_and_short_words_dropped(self):
        assert extract_keywords("The water cycle, including evaporation!") == [
            "water", "cycle", "including", "evaporation",
        ]

    def test_stop_words_and_limit(self):
        words = extract_keywords("these " + " ".join(f"keyword{i}" for i in range(15)))
        assert "these" not in words
        assert len(words) == 10


class TestScoring:
    def test_no_keywords_gives_half_credit(self):
        rubric = {"totalPoints": 100, "criteria": [{"name": "Effort", "description": "", "maxPoints": 100}]}
        result = grade(GradingEngine(FakeLLMClient()), "anything", rubric=rubric)
        assert result.rubric_alignment[0].score == 50
        assert result.score == 50
        assert result.grade_percentage == 50

    def test_partial_coverage(self):
        rubric = {"totalPoints": 10, "criteria": [
            {"name": "Cycle", "description": "Explains evaporation condensation precipitation", "maxPoints": 10},
        ]}
        result = grade(GradingEngine(FakeLLMClient()), "Water goes through evaporation and condensation.", rubric=rubric)
        alignment = result.rubric_alignment[0]
        assert alignment.score == 5
        assert alignment.notes == "Scored 50%: Partial understanding demonstrated."

    def test_unweighted_sum(self, science_rubric):
        result = grade(GradingEngine(FakeLLMClient()), ANSWER, rubric=science_rubric)
        assert [s.score for s in result.rubric_alignment] == [10, 0]
        assert result.score == 10
        assert result.max_score == 20
        assert result.grade_percentage == 50

    def test_weighted_total(self, science_rubric):
        science_rubric["criteria"][0]["weight"] = 3
        science_rubric["criteria"][1]["weight"] = 1
        result = grade(GradingEngine(FakeLLMClient()), ANSWER, rubric=science_rubric)
        assert result.score == 15
        assert result.grade_percentage == 75

    def test_equal_weights_match_unweighted(self, science_rubric):
        engine = GradingEngine(FakeLLMClient())
        answer = "Sunlight helps roots."
        plain = grade(engine, answer, rubric=science_rubric)
        for c in science_rubric["criteria"]:
            c["weight"] = 2
        weighted = grade(engine, answer, rubric=science_rubric)
        assert weighted.score == pytest.approx(plain.score)

    def test_missing_weight_counts_as_one(self, science_rubric):
        science_rubric["criteria"][0]["weight"] = 1
        result = grade(GradingEngine(FakeLLMClient()), ANSWER, rubric=science_rubric)
        assert result.score == 10

    def test_zero_total_weight_falls_back_to_unweighted(self, science_rubric):
        for c in science_rubric["criteria"]:
            c["weight"] = 0
        result = grade(GradingEngine(FakeLLMClient()), ANSWER, rubric=science_rubric)
        assert result.score == 10

    def test_rescaled_when_points_differ_from_total(self, science_rubric):
        science_rubric["totalPoints"] = 100
        result = grade(GradingEngine(FakeLLMClient()), ANSWER, rubric=science_rubric)
        assert result.score == 50
        assert result.grade_percentage == 50

    def test_max_score_override(self, science_rubric):
        result = grade(GradingEngine(FakeLLMClient()), ANSWER, rubric=science_rubric, max_score=40)
        assert result.max_score == 40
        assert result.grade_percentage == 25

    def test_scores_within_bounds(self, science_rubric):
        result = grade(GradingEngine(FakeLLMClient()), ANSWER * 5, rubric=science_rubric)
        for s in result.rubric_alignment:
            assert 0 <= s.score <= s.max_score
        assert 0 <= result.score <= result.max_score

    def test_structured_answer_serialised(self, science_rubric):
        answer = StudentAnswer(content={"response": "sunlight and photosynthesis"}, assignment_id="hw-1")
        result = grade(GradingEngine(FakeLLMClient()), answer, rubric=science_rubric)
        assert result.rubric_alignment[0].score == 10


class TestRubricValidation:
    def test_empty_criteria(self):
        fake = FakeLLMClient()
        with pytest.raises(ValidationError, match="at least one criterion"):
            grade(GradingEngine(fake), ANSWER, rubric={"totalPoints": 10, "criteria": []})
        assert fake.requests == []

    def test_non_positive_max_points(self):
        rubric = {"totalPoints": 10, "criteria": [{"name": "A", "description": "x", "maxPoints": 0}]}
        with pytest.raises(ValidationError, match="Invalid rubric"):
            grade(GradingEngine(FakeLLMClient()), ANSWER, rubric=rubric)

    def test_duplicate_names(self):
        criterion = {"name": "A", "description": "x", "maxPoints": 5}
        with pytest.raises(ValidationError):
            grade(GradingEngine(FakeLLMClient()), ANSWER, rubric={"totalPoints": 10, "criteria": [criterion, criterion]})


class TestFeedback:
    @pytest.mark.parametrize("percentage,opening", [
        (95, "Outstanding work!"),
        (85, "Great job!"),
        (75, "Good effort!"),
        (65, "Nice try!"),
        (10, "Keep working hard!"),
    ])
    def test_encouragement_bands(self, percentage, opening):
        assert rule_based_feedback([], percentage)["encouraging_feedback"].startswith(opening)

    def test_strengths_and_areas(self):
        scores = [
            CriterionScore(criterion="Accuracy", score=9, max_score=10, notes=""),
            CriterionScore(criterion="Detail", score=2, max_score=10, notes=""),
            CriterionScore(criterion="Voice", score=7, max_score=10, notes=""),
        ]
        feedback = rule_based_feedback(scores, 60)
        assert feedback["strengths"] == ["Accuracy"]
        assert feedback["areas_for_improvement"] == ["Detail"]
        assert "Detail" in feedback["instructional_insight"]

    def test_rule_based_when_ai_disabled(self, science_rubric):
        fake = FakeLLMClient()
        result = grade(GradingEngine(fake), ANSWER, rubric=science_rubric)
        assert result.feedback_source == "rule_based"
        assert fake.requests == []

    def test_ai_feedback_used(self, science_rubric):
        reply = "```json\n" + json.dumps({
            "encouragingFeedback": "You explained sunlight well!",
            "instructionalInsight": "Review how roots take in minerals.",
            "strengths": ["Energy source"],
            "areasForImprovement": ["Plant structures"],
        }) + "\n```"
        fake = FakeLLMClient([reply])
        result = grade(GradingEngine(fake), ANSWER, rubric=science_rubric, use_ai_for_feedback=True, grade_level="grade_4")
        assert result.feedback_source == "ai"
        assert result.encouraging_feedback == "You explained sunlight well!"
        assert result.areas_for_improvement == ["Plant structures"]
        assert result.score == 10

        request = fake.requests[0]
        assert ANSWER in request.prompt
        assert "- Accuracy: 10.0/10.0 points" in request.prompt
        assert "Grade Level: grade_4" in request.system_prompt

    def test_transport_failure_falls_back(self, science_rubric):
        fake = FakeLLMClient(error=TransportError("Hosted API error: 500 - boom", status_code=500))
        with pytest.warns(ParseRecoveryWarning):
            result = grade(GradingEngine(fake), ANSWER, rubric=science_rubric, use_ai_for_feedback=True)
        assert result.feedback_source == "rule_based"
        assert result.encouraging_feedback
        assert result.score == 10

    @pytest.mark.parametrize("body", [
        {"choices": [{"message": "plain string"}]},
        {"choices": [{"message": {"content": [{"type": "text", "text": "Nice work"}]}}]},
        {"choices": [{"message": {"content": "{}"}}], "usage": {"prompt_tokens": "n/a"}},
    ])
    def test_malformed_model_reply_falls_back(self, science_rubric, body):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)))
        gateway = LLMClient(LLMConfig(provider="hosted_api", api_key="sk-test"), http_client=http)
        with pytest.warns(ParseRecoveryWarning):
            result = grade(GradingEngine(gateway), ANSWER, rubric=science_rubric, use_ai_for_feedback=True)
        assert result.feedback_source == "rule_based"
        assert result.encouraging_feedback
        assert result.score == 10

    def test_unparseable_reply_falls_back(self, science_rubric):
        fake = FakeLLMClient(["Great work, keep it up!"])
        with pytest.warns(ParseRecoveryWarning):
            result = grade(GradingEngine(fake), ANSWER, rubric=science_rubric, use_ai_for_feedback=True)
        assert result.feedback_source == "rule_based"

    def test_pii_removed_and_answer_truncated(self, science_rubric):
        fake = FakeLLMClient(["{}"])
        answer = "Write to kid@example.com. " + "a" * 2500
        result = grade(GradingEngine(fake), answer, rubric=science_rubric, use_ai_for_feedback=True)
        prompt = fake.requests[0].prompt
        assert "kid@example.com" not in prompt
        assert "a" * 2001 not in prompt
        assert "a" * 1900 + "..." in prompt
        assert result.encouraging_feedback == "Great effort on this assignment!"

    def test_parse_ai_feedback_defaults(self):
        parsed = parse_ai_feedback('{"strengths": ["Clear", ""], "areasForImprovement": "not a list"}')
        assert parsed["strengths"] == ["Clear"]
        assert parsed["areas_for_improvement"] == []
        assert parsed["instructional_insight"]

    def test_parse_ai_feedback_rejects_prose(self):
        assert parse_ai_feedback("Nice job!") is None
