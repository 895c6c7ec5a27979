import pytest

from tagnormalizer.errors import TransportError
from tagnormalizer.transport import RetryingTransport, TagOperation, TagTransport


class FlakyTransport(TagTransport):
    def __init__(self, failures):
        self.failures = list(failures)
        self.attempts = 0

    def _maybe_fail(self):
        self.attempts += 1
        if self.failures:
            raise self.failures.pop(0)

    def read_tags(self, resource_id):
        self._maybe_fail()
        return {"environment": "prod"}

    def mutate_tags(self, resource_id, operation, tags, dry_run):
        self._maybe_fail()
        return f"{operation.value}: OK"


def test_retries_throttled_calls_with_growing_delay(throttled):
    inner = FlakyTransport([throttled, throttled])
    delays = []
    transport = RetryingTransport(inner, max_attempts=5, base_delay=1.0, sleep=delays.append)

    assert transport.read_tags("r1") == {"environment": "prod"}
    assert inner.attempts == 3
    assert len(delays) == 2
    assert 1.0 <= delays[0] <= 1.2
    assert 2.0 <= delays[1] <= 2.4


def test_delay_is_capped():
    transport = RetryingTransport(FlakyTransport([]), base_delay=10.0, max_delay=15.0)
    assert transport._delay(5) <= 15.0 * 1.2


def test_gives_up_after_max_attempts(throttled):
    inner = FlakyTransport([throttled] * 5)
    transport = RetryingTransport(inner, max_attempts=3, sleep=lambda s: None)
    with pytest.raises(TransportError):
        transport.mutate_tags("r1", TagOperation.MERGE, {"a": "b"}, dry_run=False)
    assert inner.attempts == 3


def test_non_retryable_errors_raise_immediately():
    inner = FlakyTransport([TransportError("AuthorizationFailed", status_code=403)])
    transport = RetryingTransport(inner, sleep=lambda s: pytest.fail("should not sleep"))
    with pytest.raises(TransportError, match="AuthorizationFailed"):
        transport.read_tags("r1")
    assert inner.attempts == 1


def test_throttling_code_without_status_is_retryable():
    err = TransportError("Rate exceeded", code="ThrottlingException")
    inner = FlakyTransport([err])
    transport = RetryingTransport(inner, sleep=lambda s: None)
    assert transport.mutate_tags("r1", TagOperation.REMOVE, {"a": "b"}, dry_run=True) == "Remove: OK"


@pytest.mark.parametrize("status,retryable", [(429, True), (503, True), (404, False), (None, False)])
def test_retryable_classification(status, retryable):
    assert TransportError("x", status_code=status).retryable is retryable


def test_max_attempts_validated():
    with pytest.raises(ValueError):
        RetryingTransport(FlakyTransport([]), max_attempts=0)
