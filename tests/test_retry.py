import pytest
import requests
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from app.integrations.errors import (
    InputValidationError,
    ProviderAuthError,
    TransientProviderError,
)
from app.integrations.retry import RetryPolicy, is_transient_error, with_retry


class _Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def test_transient_failures_are_retried_with_backoff():
    sleeps: list[float] = []
    func = _Flaky(TransientProviderError("503"), requests.Timeout("slow"), "ok")
    policy = RetryPolicy(max_attempts=3, base_delay=0.5, sleep_fn=sleeps.append)

    assert policy.call(func) == "ok"
    assert func.calls == 3
    assert sleeps == [0.5, 1.0]


def test_gives_up_after_max_attempts():
    sleeps: list[float] = []
    func = _Flaky(*(TransientProviderError("down") for _ in range(3)))

    with pytest.raises(TransientProviderError):
        RetryPolicy(max_attempts=3, sleep_fn=sleeps.append).call(func)

    assert func.calls == 3
    assert len(sleeps) == 2


@pytest.mark.parametrize(
    "error",
    [
        InputValidationError("bad"),
        ProviderAuthError("expired", status_code=401),
        ValueError("boom"),
    ],
)
def test_permanent_failures_are_not_retried(error):
    func = _Flaky(error)
    with pytest.raises(type(error)):
        RetryPolicy(sleep_fn=lambda _: None).call(func)
    assert func.calls == 1


def test_delay_is_capped():
    policy = RetryPolicy(base_delay=1.0, max_delay=3.0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]


def test_is_transient_error_for_http_errors():
    throttled = requests.Response()
    throttled.status_code = 429
    not_found = requests.Response()
    not_found.status_code = 404

    assert is_transient_error(requests.HTTPError(response=throttled))
    assert not is_transient_error(requests.HTTPError(response=not_found))
    assert is_transient_error(requests.ConnectionError())
    assert is_transient_error(TimeoutError())
    assert not is_transient_error(KeyError("x"))


def test_is_transient_error_for_database_errors():
    dropped = ConnectionError("server closed the connection unexpectedly")

    assert is_transient_error(OperationalError("SELECT 1", {}, dropped))
    assert is_transient_error(DBAPIError("SELECT 1", {}, dropped, connection_invalidated=True))
    assert not is_transient_error(DBAPIError("SELECT 1", {}, ValueError("bad")))
    assert not is_transient_error(IntegrityError("INSERT", {}, ValueError("duplicate key")))


def test_with_retry_wrapper():
    func = _Flaky(ConnectionError("reset"), 42)
    assert with_retry(func, sleep_fn=lambda _: None) == 42
    assert func.calls == 2
