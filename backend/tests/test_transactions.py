import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from backend.services.transactions import is_transient_conflict, run_in_transaction


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class _FakeSession:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def _conflict(sqlstate="40001"):
    return OperationalError("UPDATE products ...", {}, _PgError(sqlstate))


def test_transient_conflict_detection():
    assert is_transient_conflict(_conflict("40001"))
    assert is_transient_conflict(_conflict("40P01"))
    assert is_transient_conflict(OperationalError("x", {}, Exception("database is locked")))
    assert not is_transient_conflict(IntegrityError("x", {}, _PgError("23505")))
    assert not is_transient_conflict(ValueError("nope"))


def test_retries_then_succeeds():
    db = _FakeSession()
    calls = []

    def fn(session):
        calls.append(1)
        if len(calls) < 3:
            raise _conflict()
        return "done"

    assert run_in_transaction(db, fn, attempts=3, backoff=0) == "done"
    assert len(calls) == 3
    assert (db.commits, db.rollbacks) == (1, 2)


def test_gives_up_after_last_attempt():
    db = _FakeSession()

    def fn(session):
        raise _conflict("40P01")

    with pytest.raises(OperationalError):
        run_in_transaction(db, fn, attempts=2, backoff=0)
    assert (db.commits, db.rollbacks) == (0, 2)


def test_other_errors_are_not_retried():
    db = _FakeSession()
    calls = []

    def fn(session):
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        run_in_transaction(db, fn, attempts=5, backoff=0)
    assert len(calls) == 1
    assert db.rollbacks == 1
