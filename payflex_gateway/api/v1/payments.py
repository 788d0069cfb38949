"""POST /v1/transactions/send and GET /v1/transactions/{transaction_id}/status"""

import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from payflex_gateway.api.v1.schemas import PaymentOutcomeResponse, SendPaymentRequest, TransactionStatusResponse
from payflex_gateway.api.dependencies import get_payment_orchestrator, get_request_id
from payflex_gateway.domain.exceptions import ProviderUnavailable, SessionConflict, StorageUnavailable
from payflex_gateway.domain.models import PaymentRequest
from payflex_gateway.domain.payments import PaymentOrchestrator
from payflex_gateway.infrastructure.database.repositories import commit
from payflex_gateway.infrastructure.database.session import get_db

router = APIRouter()


@router.post("/transactions/send", response_model=PaymentOutcomeResponse)
async def send_payment(
    request_body: SendPaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """
    Send money over any channel.

    Flow:
    1. Reject non-positive amounts
    2. Fraud-check the sender (fails closed if the vendor is down)
    3. Resolve the recipient alias
    4. Dispatch: mobile money returns a payment URL, other channels settle
       and record the ledger pair
    5. Commit transaction row and ledger pair together
    """
    request_id = get_request_id(request)

    try:
        outcome = await orchestrator.send(
            PaymentRequest(
                sender_identity=request_body.sender_did,
                recipient_alias=request_body.recipient_alias,
                amount=request_body.amount,
                channel=request_body.channel,
                network_address=request.client.host if request.client else None,
            )
        )
        commit(db)

    except (StorageUnavailable, SessionConflict) as e:
        db.rollback()
        logging.error(f"Storage error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Storage unavailable")

    return PaymentOutcomeResponse(
        success=outcome.success,
        status=outcome.status,
        message=outcome.message,
        transaction_id=outcome.transaction_id,
        payment_url=outcome.payment_url,
    )


@router.get("/transactions/{transaction_id}/status", response_model=TransactionStatusResponse)
async def get_transaction_status(
    transaction_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Status of a transaction; mobile money rows are checked with the provider"""
    try:
        transaction_uuid = uuid.UUID(transaction_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid transaction ID format")

    try:
        status = await orchestrator.check_status(transaction_uuid)
    except ProviderUnavailable as e:
        logging.error(f"Provider status check failed: {e}")
        raise HTTPException(status_code=503, detail="Payment provider unavailable")
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Storage unavailable")

    if status is None:
        raise HTTPException(status_code=404, detail="Transaction not found")

    return TransactionStatusResponse(transaction_id=transaction_id, status=status)
