"""
KeyedLocks bookkeeping: keys live only while a session holds or waits
for them.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from bookkeeping_kernel.exceptions import LockTimeoutError
from bookkeeping_kernel.services.ledger import KeyedLocks, account_key


@pytest.fixture
def plain_engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


def test_keys_are_forgotten_when_the_transaction_ends(plain_engine):
    locks = KeyedLocks(timeout=1.0)

    with Session(plain_engine) as session:
        locks.hold(session, [account_key("1001"), account_key("1002")])
        locks.hold(session, [account_key("1001")])
        assert locks.active_keys == 2
        session.commit()

        assert locks.active_keys == 0
        assert not locks.is_held(session, account_key("1001"))


def test_many_transactions_leave_no_keys_behind(plain_engine):
    locks = KeyedLocks(timeout=1.0)

    with Session(plain_engine) as session:
        for code in range(1, 201):
            locks.hold(session, [account_key(str(code))])
            session.rollback()

    assert locks.active_keys == 0


def test_timed_out_waiter_does_not_leak_its_key(plain_engine):
    locks = KeyedLocks(timeout=0.05)

    with Session(plain_engine) as holder, Session(plain_engine) as waiter:
        locks.hold(holder, [account_key("1001")])

        with pytest.raises(LockTimeoutError):
            locks.hold(waiter, [account_key("1001"), account_key("1002")])

        assert locks.active_keys == 1
        holder.rollback()
        assert locks.active_keys == 0

        locks.hold(waiter, [account_key("1001")])
        assert locks.is_held(waiter, account_key("1001"))
        waiter.rollback()

    assert locks.active_keys == 0
