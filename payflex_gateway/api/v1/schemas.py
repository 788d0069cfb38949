"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from payflex_gateway.domain.models import LedgerEventType, OutcomeStatus, PaymentChannel


class UssdRequestBody(BaseModel):
    """Carrier callback body for POST /v1/ussd"""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", min_length=1, description="Carrier session identifier")
    phone_number: str = Field(..., alias="phoneNumber", description="Subscriber phone number")
    text: str = Field("", description="Accumulated input for the dialogue, '*'-separated")


class UssdResponseBody(BaseModel):
    """Reply for the carrier; keepSession=false closes the dialogue"""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    keep_session: bool = Field(..., alias="keepSession")


class SendPaymentRequest(BaseModel):
    """Request body for POST /v1/transactions/send"""

    sender_did: str = Field(..., min_length=1)
    recipient_alias: str = Field(..., min_length=1, description="Phone, email or DID")
    amount: Decimal
    channel: PaymentChannel


class PaymentOutcomeResponse(BaseModel):
    success: bool
    status: OutcomeStatus
    message: str
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None


class TransactionStatusResponse(BaseModel):
    transaction_id: str
    status: str


class FraudCheckRequest(BaseModel):
    """Request body for POST /v1/fraud/check"""

    did: str = Field(..., min_length=1)
    ip_address: Optional[str] = None


class FraudAssessmentResponse(BaseModel):
    did: str
    internal_score: int
    external_score: int
    fraud_score: int
    is_blocked: bool


class FraudScoreResponse(BaseModel):
    did: str
    score: int


class LedgerRecordRequest(BaseModel):
    """Request body for POST /v1/ledger/record"""

    did: str = Field(..., min_length=1)
    event_type: LedgerEventType
    amount: Decimal = Field(..., ge=0)
    counterparty_did: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class LedgerEventSchema(BaseModel):
    event_id: int
    did: str
    event_type: LedgerEventType
    amount: Decimal
    counterparty_did: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class LedgerHistoryResponse(BaseModel):
    """Response for GET /v1/ledger/user/{did}"""

    did: str
    events: List[LedgerEventSchema]
