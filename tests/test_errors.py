"""
Tests for the error taxonomy.
"""

from browza.errors import (
    BrokerError,
    ErrorCode,
    ErrorContext,
    InvalidMetricsError,
    InvalidTransitionError,
    JobNotFoundError,
    StoreUnavailableError,
)


class TestErrorCodes:
    def test_error_codes_unique(self):
        values = [e.value for e in ErrorCode]
        assert len(values) == len(set(values))


class TestBrokerErrors:
    def test_store_unavailable(self):
        exc = StoreUnavailableError()

        assert exc.retryable
        assert exc.http_status == 503
        assert exc.to_response() == {"error": "store_unavailable"}

    def test_not_found_carries_job_id(self):
        exc = JobNotFoundError("job_abc")

        assert exc.http_status == 404
        assert exc.context.job_id == "job_abc"
        assert "job_id=job_abc" in str(exc)

    def test_response_hides_internal_detail(self):
        exc = StoreUnavailableError(
            "password authentication failed for user postgres",
            context=ErrorContext(operation="jobs.get", backend="postgres"),
            cause=OSError("boom"),
        )

        assert exc.to_response() == {"error": "store_unavailable"}
        assert exc.to_dict()["context"]["backend"] == "postgres"
        assert exc.to_dict()["cause"] == "boom"

    def test_transition_and_metrics_bodies(self):
        assert InvalidTransitionError("job_1", "failed", "running").to_response() == {
            "error": "invalid_transition",
            "status": "failed",
        }
        assert InvalidMetricsError("bad", fields=["p50"]).to_response() == {
            "error": "invalid_metrics",
            "fields": ["p50"],
        }

    def test_all_are_broker_errors(self):
        for cls in (StoreUnavailableError, JobNotFoundError, InvalidTransitionError, InvalidMetricsError):
            assert issubclass(cls, BrokerError)
