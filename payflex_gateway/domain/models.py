"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class MenuState(str, Enum):
    """Position of a USSD dialogue in the menu tree"""

    NEW = "NEW"
    MAIN_MENU = "MAIN_MENU"
    SEND_MONEY_STEP1 = "SEND_MONEY_STEP1"
    SEND_MONEY_STEP2 = "SEND_MONEY_STEP2"
    ENDED = "ENDED"


class PaymentChannel(str, Enum):
    BANK = "bank"
    WALLET = "wallet"
    QR = "qr"
    ORANGE_MONEY = "orange_money"
    USSD = "ussd"


class LedgerEventType(str, Enum):
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    UTILITY_PAYMENT = "UTILITY_PAYMENT"
    LOAN_DISBURSE = "LOAN_DISBURSE"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"
    MERCHANT_FEE = "MERCHANT_FEE"
    DISBURSEMENT = "DISBURSEMENT"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class OutcomeStatus(str, Enum):
    """How a payment attempt ended"""

    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"  # validation
    BLOCKED = "BLOCKED"  # fraud gate
    NOT_FOUND = "NOT_FOUND"
    UNAVAILABLE = "UNAVAILABLE"  # external dependency down, failed closed


@dataclass
class Account:
    """Account holder as seen by the identity directory"""

    did: str
    full_name: str
    email: str
    phone_number: str
    balance: Decimal = Decimal("0")


@dataclass
class UssdSession:
    """One in-progress USSD dialogue"""

    session_id: str
    phone_number: str
    current_menu: MenuState
    temp_data: Dict[str, str]
    initiated_at: datetime
    last_interaction_at: datetime
    is_active: bool = True
    last_text: str = ""  # carrier text of the last handled turn
    last_response: str = ""


@dataclass
class UssdRequest:
    """Single carrier turn"""

    session_id: str
    phone_number: str
    text: str


@dataclass
class UssdReply:
    """Reply handed back to the carrier gateway"""

    response: str
    keep_session: bool


@dataclass
class PaymentRequest:
    """One attempted value transfer"""

    sender_identity: str
    recipient_alias: str
    amount: Decimal
    channel: PaymentChannel
    network_address: Optional[str] = None


@dataclass
class PaymentOutcome:
    """Result of PaymentOrchestrator.send"""

    status: OutcomeStatus
    message: str
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (OutcomeStatus.COMPLETED, OutcomeStatus.PENDING)


@dataclass
class FraudAssessment:
    """Composite fraud score for one subject and one evaluation"""

    subject_identity: str
    internal_score: int
    external_score: int
    composite_score: int
    is_blocked: bool


@dataclass
class LedgerEvent:
    """Immutable ledger entry; event_id is assigned on record"""

    subject_identity: str
    event_type: LedgerEventType
    amount: Decimal
    counterparty_identity: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    reference: Optional[str] = None
    event_id: Optional[int] = None
