"""POST /v1/ledger/record and GET /v1/ledger/user/{did}"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from payflex_gateway.api.v1.schemas import LedgerEventSchema, LedgerHistoryResponse, LedgerRecordRequest
from payflex_gateway.api.dependencies import get_ledger_recorder
from payflex_gateway.domain.exceptions import StorageUnavailable
from payflex_gateway.domain.ledger import LedgerRecorder
from payflex_gateway.domain.models import LedgerEvent
from payflex_gateway.infrastructure.database.repositories import commit
from payflex_gateway.infrastructure.database.session import get_db

router = APIRouter()


def _to_schema(event: LedgerEvent) -> LedgerEventSchema:
    return LedgerEventSchema(
        event_id=event.event_id,
        did=event.subject_identity,
        event_type=event.event_type,
        amount=event.amount,
        counterparty_did=event.counterparty_identity,
        metadata=event.metadata,
        timestamp=event.timestamp,
    )


@router.post("/ledger/record", response_model=LedgerEventSchema, status_code=201)
def record_event(
    request_body: LedgerRecordRequest,
    db: Session = Depends(get_db),
    ledger: LedgerRecorder = Depends(get_ledger_recorder),
):
    """Append one ledger event; existing events are never edited"""
    try:
        event = ledger.record(
            LedgerEvent(
                subject_identity=request_body.did,
                event_type=request_body.event_type,
                amount=request_body.amount,
                counterparty_identity=request_body.counterparty_did,
                metadata=request_body.metadata,
                timestamp=request_body.timestamp,
            )
        )
        commit(db)
    except StorageUnavailable:
        db.rollback()
        raise HTTPException(status_code=503, detail="Storage unavailable")

    return _to_schema(event)


@router.get("/ledger/user/{did}", response_model=LedgerHistoryResponse)
def get_user_ledger(
    did: str,
    from_time: Optional[datetime] = Query(None, alias="from", description="Inclusive lower bound"),
    to_time: Optional[datetime] = Query(None, alias="to", description="Inclusive upper bound"),
    ledger: LedgerRecorder = Depends(get_ledger_recorder),
):
    """
    Retrieve a subject's ledger events, newest first.

    Returns:
        Events ordered by timestamp descending, ties by event_id descending
    """
    try:
        events = [_to_schema(e) for e in ledger.query(did, from_time, to_time)]
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Storage unavailable")

    return LedgerHistoryResponse(did=did, events=events)
