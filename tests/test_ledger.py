from concurrent.futures import ThreadPoolExecutor
import threading

import pytest

from realmauth.exceptions import ExchangeFinishedError
from realmauth.ledger import AnswerLedger, PENDING


def test_absent_ledger_is_vacuously_filled():
    ledger = AnswerLedger()
    assert ledger.is_filled()
    assert ledger.snapshot() is None
    assert ledger.state == AnswerLedger.IDLE

def test_expected_realms_are_pending():
    ledger = AnswerLedger()
    ledger.expect(["a", "b"])
    assert ledger.snapshot() == {"a": PENDING, "b": PENDING}
    assert not ledger.is_filled()
    assert ledger.state == AnswerLedger.PENDING

def test_only_the_filling_submission_claims_the_resend():
    ledger = AnswerLedger()
    ledger.expect(["a", "b"])
    assert ledger.submit("a", {"x": 1}) is False
    assert ledger.submit("b", {"y": 2}) is True
    assert ledger.state == AnswerLedger.RESENDING
    assert ledger.submit("b", {"y": 3}) is False, "Resend is already in flight"
    ledger.resend_finished()
    assert ledger.state == AnswerLedger.IDLE

def test_removal_can_fill_the_ledger():
    ledger = AnswerLedger()
    ledger.expect(["a", "b"])
    ledger.submit("a", {"x": 1})
    assert ledger.remove("b") is True
    assert ledger.snapshot() == {"a": {"x": 1}}

def test_removing_unknown_realm_is_a_no_op():
    ledger = AnswerLedger()
    ledger.expect(["a"])
    assert ledger.remove("nope") is False
    assert ledger.snapshot() == {"a": PENDING}

def test_non_string_answers_are_never_pending():
    ledger = AnswerLedger()
    ledger.expect(["a"])
    ledger.submit("a", {})  # An empty object is still an answer
    assert ledger.is_filled()

def test_clear_forgets_everything():
    ledger = AnswerLedger()
    ledger.expect(["a"])
    ledger.clear()
    assert ledger.snapshot() is None
    assert ledger.is_filled()

def test_racing_submissions_claim_exactly_one_resend():
    realms = [f"realm{i}" for i in range(32)]
    for _ in range(20):
        ledger = AnswerLedger()
        ledger.expect(realms)
        barrier = threading.Barrier(len(realms))

        def submit(realm):
            barrier.wait()
            return ledger.submit(realm, {"answer": realm})

        with ThreadPoolExecutor(max_workers=len(realms)) as pool:
            claims = list(pool.map(submit, realms))
        assert claims.count(True) == 1

def test_finished_ledger_refuses_answers_until_cleared():
    ledger = AnswerLedger()
    ledger.expect(["a", "b"])
    assert ledger.finish() is True
    assert ledger.finish() is False, "Only the first finish counts"
    assert ledger.snapshot() is None
    with pytest.raises(ExchangeFinishedError):
        ledger.submit("a", {"x": 1})
    with pytest.raises(ExchangeFinishedError):
        ledger.remove("b")
    ledger.clear()
    assert ledger.submit("a", {"x": 1}) is True
