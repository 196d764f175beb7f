"""
Tests for status normalization, call-type classification and criteria scoring.
"""
import pytest

from call_ingest.schemas.pydantic_schemas import CallOutcome, CallType
from call_ingest.services.classifier import classify_call_type, log_call_type, provider_for
from call_ingest.services.criteria import score_criteria
from call_ingest.services.status import normalize_outcome


# ---------------------------------------------------------------------------
# normalize_outcome
# ---------------------------------------------------------------------------

class TestNormalizeOutcome:
    @pytest.mark.parametrize("raw", ["done", "success", "successful", "completed", "ok", "DONE", " Completed "])
    def test_answered(self, raw):
        assert normalize_outcome(raw) == CallOutcome.ANSWERED

    @pytest.mark.parametrize("raw", ["cancelled", "canceled", "hangup", "hang-up", "no_answer", "NO_ANSWER"])
    def test_missed(self, raw):
        assert normalize_outcome(raw) == CallOutcome.MISSED

    def test_busy(self):
        assert normalize_outcome("busy") == CallOutcome.BUSY

    @pytest.mark.parametrize("raw", ["some_unknown_value", "error", "failed", "timeout", "", None])
    def test_everything_else_fails(self, raw):
        assert normalize_outcome(raw) == CallOutcome.FAILED


# ---------------------------------------------------------------------------
# classify_call_type
# ---------------------------------------------------------------------------

class TestClassifyCallType:
    def test_batch_agent(self):
        assert classify_call_type("a_batch", "a_batch", "a_app") == CallType.BATCH

    def test_in_app_agent(self):
        assert classify_call_type("a_app", "a_batch", "a_app") == CallType.IN_APP

    def test_unknown_agent(self):
        assert classify_call_type("other", "a_batch", "a_app") == CallType.UNKNOWN

    def test_missing_agent_never_matches_unset_config(self):
        assert classify_call_type(None, "", "") == CallType.UNKNOWN
        assert classify_call_type("", "", "") == CallType.UNKNOWN

    def test_provider_tags(self):
        assert provider_for(CallType.IN_APP) == "webrtc"
        assert provider_for(CallType.BATCH) == "elevenlabs"
        assert provider_for(CallType.UNKNOWN) == "elevenlabs"
        assert log_call_type(CallType.IN_APP) == "in_app_call"
        assert log_call_type(CallType.BATCH) == "batch_call"


# ---------------------------------------------------------------------------
# score_criteria
# ---------------------------------------------------------------------------

class TestScoreCriteria:
    def test_counts_passed_and_failed(self):
        result = score_criteria({
            "greeted": {"result": "success"},
            "medication": {"result": "failure"},
            "goodbye": {"result": "success"},
        })
        assert result.score == 2
        assert result.total == 3
        assert result.failed_criteria == ["medication"]
        assert result.quality_rating == "2/3"

    def test_malformed_entries_excluded_from_both_counts(self):
        result = score_criteria({
            "greeted": {"result": "success"},
            "no_result": {"rationale": "n/a"},
            "unknown": {"result": "unknown"},
            "not_a_dict": "success",
            "null": None,
        })
        assert result.score == 1
        assert result.total == 1
        assert result.passed_criteria == ["greeted"]

    def test_empty_is_not_applicable(self):
        result = score_criteria({})
        assert result.total == 0
        assert result.quality_rating == "N/A"
        assert result.as_dict()["quality_rating"] == "N/A"

    def test_non_dict_input(self):
        assert score_criteria(None).total == 0
