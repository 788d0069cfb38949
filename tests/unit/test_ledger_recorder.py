"""Unit tests for the append-only ledger"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.orm import Session
from payflex_gateway.domain.exceptions import ImmutableLedgerError, InvalidAmountError
from payflex_gateway.domain.ledger import LedgerRecorder
from payflex_gateway.domain.models import LedgerEvent, LedgerEventType
from payflex_gateway.infrastructure.database.models import LedgerEventRecord, MerchantFee, UtilityPayment

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _event(did: str, event_type: LedgerEventType, amount: str, at: datetime, **kwargs) -> LedgerEvent:
    return LedgerEvent(subject_identity=did, event_type=event_type, amount=Decimal(amount), timestamp=at, **kwargs)


def test_record_assigns_increasing_event_ids(ledger: LedgerRecorder):
    first = ledger.record(_event("did:bw:a", LedgerEventType.DISBURSEMENT, "10", BASE_TIME))
    second = ledger.record(_event("did:bw:b", LedgerEventType.DISBURSEMENT, "20", BASE_TIME))

    assert first.event_id is not None
    assert second.event_id > first.event_id


def test_query_newest_first_with_event_id_tiebreak(ledger: LedgerRecorder):
    older = ledger.record(_event("did:bw:a", LedgerEventType.LOAN_DISBURSE, "100", BASE_TIME))
    tie_1 = ledger.record(_event("did:bw:a", LedgerEventType.LOAN_REPAYMENT, "10", BASE_TIME + timedelta(days=1)))
    tie_2 = ledger.record(_event("did:bw:a", LedgerEventType.LOAN_REPAYMENT, "15", BASE_TIME + timedelta(days=1)))
    ledger.record(_event("did:bw:other", LedgerEventType.LOAN_REPAYMENT, "99", BASE_TIME + timedelta(days=2)))

    ids = [e.event_id for e in ledger.query("did:bw:a")]

    assert ids == [tie_2.event_id, tie_1.event_id, older.event_id]


def test_query_time_range_is_inclusive(ledger: LedgerRecorder):
    for day in range(5):
        ledger.record(_event("did:bw:a", LedgerEventType.DISBURSEMENT, str(day + 1), BASE_TIME + timedelta(days=day)))

    events = list(ledger.query("did:bw:a", BASE_TIME + timedelta(days=1), BASE_TIME + timedelta(days=3)))

    assert [e.amount for e in events] == [Decimal("4"), Decimal("3"), Decimal("2")]


def test_query_is_lazy_and_restartable(ledger: LedgerRecorder):
    """The same query object reflects events recorded after it was built"""
    query = ledger.query("did:bw:a")
    ledger.record(_event("did:bw:a", LedgerEventType.DISBURSEMENT, "1", BASE_TIME))

    assert len(list(query)) == 1
    assert len(list(query)) == 1

    ledger.record(_event("did:bw:a", LedgerEventType.DISBURSEMENT, "2", BASE_TIME + timedelta(hours=1)))
    assert len(list(query)) == 2


def test_query_of_type_narrows(ledger: LedgerRecorder):
    ledger.record(_event("did:bw:a", LedgerEventType.TRANSFER_IN, "5", BASE_TIME))
    ledger.record(_event("did:bw:a", LedgerEventType.MERCHANT_FEE, "1", BASE_TIME))

    fees = list(ledger.query("did:bw:a").of_type(LedgerEventType.MERCHANT_FEE))

    assert [e.event_type for e in fees] == [LedgerEventType.MERCHANT_FEE]


def test_record_transfer_writes_reciprocal_pair(ledger: LedgerRecorder):
    out_event, in_event = ledger.record_transfer("did:bw:x", "did:bw:y", Decimal("100"), "ref-1", {"channel": "bank"})

    assert out_event.event_type == LedgerEventType.TRANSFER_OUT
    assert out_event.subject_identity == "did:bw:x"
    assert out_event.counterparty_identity == "did:bw:y"
    assert in_event.event_type == LedgerEventType.TRANSFER_IN
    assert in_event.subject_identity == "did:bw:y"
    assert in_event.counterparty_identity == "did:bw:x"
    assert out_event.amount == in_event.amount == Decimal("100")
    assert in_event.metadata == {"channel": "bank"}


def test_record_transfer_is_idempotent_on_reference(ledger: LedgerRecorder):
    """Retrying a transfer with the same reference must not double-credit"""
    first = ledger.record_transfer("did:bw:x", "did:bw:y", Decimal("100"), "ref-1")
    retry = ledger.record_transfer("did:bw:x", "did:bw:y", Decimal("100"), "ref-1")

    assert [e.event_id for e in retry] == [e.event_id for e in first]
    assert len(list(ledger.query("did:bw:y"))) == 1
    assert len(list(ledger.query("did:bw:x"))) == 1


def test_record_transfer_completes_half_written_pair(ledger: LedgerRecorder):
    """A retry after only TRANSFER_OUT landed writes just the missing half"""
    ledger.record(
        LedgerEvent(
            subject_identity="did:bw:x",
            event_type=LedgerEventType.TRANSFER_OUT,
            amount=Decimal("40"),
            counterparty_identity="did:bw:y",
            reference="ref-2",
        )
    )

    ledger.record_transfer("did:bw:x", "did:bw:y", Decimal("40"), "ref-2")

    assert len(list(ledger.query("did:bw:x"))) == 1
    assert [e.event_type for e in ledger.query("did:bw:y")] == [LedgerEventType.TRANSFER_IN]


def test_events_cannot_be_edited(db: Session, ledger: LedgerRecorder):
    event = ledger.record(_event("did:bw:a", LedgerEventType.DISBURSEMENT, "10", BASE_TIME))
    row = db.get(LedgerEventRecord, event.event_id)

    row.amount = Decimal("999")
    with pytest.raises(ImmutableLedgerError):
        db.flush()


def test_events_cannot_be_deleted(db: Session, ledger: LedgerRecorder):
    event = ledger.record(_event("did:bw:a", LedgerEventType.DISBURSEMENT, "10", BASE_TIME))
    row = db.get(LedgerEventRecord, event.event_id)

    db.delete(row)
    with pytest.raises(ImmutableLedgerError):
        db.flush()


def test_negative_amount_rejected(ledger: LedgerRecorder):
    with pytest.raises(InvalidAmountError):
        ledger.record(_event("did:bw:a", LedgerEventType.TRANSFER_OUT, "-5", BASE_TIME))


def test_utility_payment_writes_side_record(db: Session, ledger: LedgerRecorder):
    event = ledger.record(
        _event(
            "did:bw:a",
            LedgerEventType.UTILITY_PAYMENT,
            "120.50",
            BASE_TIME,
            metadata={"utilityName": "BPC", "transactionRef": "elec-77", "location": "Gaborone"},
        )
    )

    side = db.execute(select(UtilityPayment)).scalar_one()
    assert side.event_id == event.event_id
    assert side.provider == "BPC"
    assert side.payment_type == "BILL_PAYMENT"
    assert side.transaction_ref == "elec-77"
    assert side.payment_amount == Decimal("120.50")


def test_merchant_fee_writes_side_record(db: Session, ledger: LedgerRecorder):
    event = ledger.record(
        _event("did:bw:shop", LedgerEventType.MERCHANT_FEE, "2.00", BASE_TIME, metadata={"txnId": "tx-9"})
    )

    fee = db.execute(select(MerchantFee)).scalar_one()
    assert fee.event_id == event.event_id
    assert fee.merchant_did == "did:bw:shop"
    assert fee.txn_id == "tx-9"
    assert fee.paid_out is False
