import pytest
from sqlalchemy.exc import OperationalError

from modules.core import InsufficientStock, transactional


class FakeSession:
    def __init__(self):
        self.info = {}
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class Service:
    def __init__(self, failures=0, error=None):
        self.session = FakeSession()
        self.calls = 0
        self.failures = failures
        self.error = error

    @transactional
    def outer(self):
        self.inner()
        return "done"

    @transactional
    def inner(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "inner"


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("modules.core.transaction.time.sleep", lambda seconds: None)


def _locked():
    return OperationalError("UPDATE parts", {}, Exception("database is locked"))


def test_outermost_call_commits_once():
    service = Service()
    assert service.outer() == "done"
    assert service.session.commits == 1
    assert service.session.info["fleet_unit_depth"] == 0


def test_business_errors_roll_back_and_are_not_retried():
    service = Service(failures=1, error=InsufficientStock(1, 5, 2))
    with pytest.raises(InsufficientStock):
        service.outer()
    assert service.calls == 1
    assert service.session.commits == 0
    assert service.session.rollbacks == 1


def test_transient_store_failure_is_retried():
    service = Service(failures=2, error=_locked())
    assert service.outer() == "done"
    assert service.calls == 3
    assert service.session.rollbacks == 2
    assert service.session.commits == 1


def test_retry_is_bounded():
    service = Service(failures=10, error=_locked())
    with pytest.raises(OperationalError):
        service.outer()
    assert service.calls == 3


def test_non_transient_operational_error_is_raised_immediately():
    service = Service(failures=1, error=OperationalError("SELECT", {}, Exception("no such table: parts")))
    with pytest.raises(OperationalError):
        service.outer()
    assert service.calls == 1
