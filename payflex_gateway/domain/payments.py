"""Payment orchestration - validate, gate on fraud, resolve, dispatch, record"""

import logging
import time
import uuid
from typing import Optional

from payflex_gateway.config import settings
from payflex_gateway.domain.exceptions import (
    ExternalScoringUnavailable,
    ProviderUnavailable,
    RecipientNotFound,
    SubjectNotFound,
)
from payflex_gateway.domain.fraud import FraudScorer
from payflex_gateway.domain.ledger import LedgerRecorder
from payflex_gateway.domain.models import (
    OutcomeStatus,
    PaymentChannel,
    PaymentOutcome,
    PaymentRequest,
    TransactionStatus,
)
from payflex_gateway.infrastructure.clients.mobile_money import MobileMoneyClient
from payflex_gateway.infrastructure.database.repositories import AccountRepository, TransactionRepository
from payflex_gateway.infrastructure.observability.logging import log_payment
from payflex_gateway.infrastructure.observability.metrics import record_payment_outcome
from payflex_gateway.utils.text_utils import alias_type_for, is_canonical_identity

logger = logging.getLogger(__name__)

AMOUNT_NOT_POSITIVE = "Amount must be greater than zero."
FRAUD_BLOCKED = "Transfer blocked due to high fraud risk."
SENDER_NOT_FOUND = "Sender not found."
RECIPIENT_NOT_FOUND = "Recipient not found."
SCORING_UNAVAILABLE = "Fraud check unavailable. Please try again later."
PROVIDER_UNAVAILABLE = "Payment provider unavailable. Please try again later."
TRANSFER_COMPLETE = "Transfer complete."


class PaymentOrchestrator:
    """
    Runs one payment attempt end to end.

    Writes are flushed into the caller's database session but never
    committed here: the caller owns the unit of work, so the transaction row
    and its ledger pair commit or roll back together.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        transactions: TransactionRepository,
        fraud_scorer: FraudScorer,
        ledger: LedgerRecorder,
        mobile_money: MobileMoneyClient,
    ):
        self.accounts = accounts
        self.transactions = transactions
        self.fraud_scorer = fraud_scorer
        self.ledger = ledger
        self.mobile_money = mobile_money

    async def send(self, request: PaymentRequest) -> PaymentOutcome:
        start_time = time.time()
        outcome = await self._send(request)

        duration_ms = (time.time() - start_time) * 1000
        record_payment_outcome(request.channel.value, outcome.status.value)
        log_payment(request.sender_identity, request.channel.value, outcome.status.value, duration_ms, outcome.transaction_id)
        return outcome

    async def _send(self, request: PaymentRequest) -> PaymentOutcome:
        # 1. Validate before any side effect
        if request.amount <= 0:
            return PaymentOutcome(OutcomeStatus.REJECTED, AMOUNT_NOT_POSITIVE)

        # 2. Fraud gate, failing closed
        try:
            assessment = await self.fraud_scorer.assess(
                request.sender_identity,
                request.network_address or settings.default_network_address,
            )
        except SubjectNotFound:
            return PaymentOutcome(OutcomeStatus.NOT_FOUND, SENDER_NOT_FOUND)
        except ExternalScoringUnavailable as e:
            logger.error(f"Fraud scoring unavailable: {e}", extra={"sender": request.sender_identity})
            return PaymentOutcome(OutcomeStatus.UNAVAILABLE, SCORING_UNAVAILABLE)

        if assessment.is_blocked:
            return PaymentOutcome(OutcomeStatus.BLOCKED, FRAUD_BLOCKED)

        # 3. Resolve recipient
        try:
            recipient = self.resolve_recipient(request.recipient_alias)
        except RecipientNotFound:
            return PaymentOutcome(OutcomeStatus.NOT_FOUND, RECIPIENT_NOT_FOUND)

        # 4. Dispatch by channel
        reference = str(uuid.uuid4())
        if request.channel == PaymentChannel.ORANGE_MONEY:
            return await self._dispatch_mobile_money(request, recipient, reference)
        return self._settle(request, recipient, reference)

    def resolve_recipient(self, alias: str) -> str:
        """Canonical identities pass through; anything else goes via the alias registry"""
        if is_canonical_identity(alias, settings.canonical_identity_prefix):
            if self.accounts.get_by_did(alias) is None:
                raise RecipientNotFound(f"No account for {alias}")
            return alias
        did = self.accounts.resolve_alias(alias_type_for(alias), alias)
        if did is None:
            raise RecipientNotFound(f"No account registered for alias {alias!r}")
        return did

    async def _dispatch_mobile_money(self, request: PaymentRequest, recipient: str, reference: str) -> PaymentOutcome:
        sender = self.accounts.get_by_did(request.sender_identity)
        if sender is None:
            return PaymentOutcome(OutcomeStatus.NOT_FOUND, SENDER_NOT_FOUND)

        try:
            payment = await self.mobile_money.initialize_payment(
                amount=request.amount,
                currency=settings.currency,
                subscriber_phone=sender.phone_number,
                reference=reference,
            )
        except ProviderUnavailable as e:
            logger.error(f"Mobile money provider unavailable: {e}", extra={"reference": reference})
            return PaymentOutcome(OutcomeStatus.UNAVAILABLE, PROVIDER_UNAVAILABLE)

        # Confirmation arrives out of band; no ledger pair until then
        row = self.transactions.create_transaction(
            from_did=request.sender_identity,
            to_did=recipient,
            amount=request.amount,
            currency=settings.currency,
            channel=request.channel.value,
            status=TransactionStatus.PENDING,
            reference=reference,
            alias_used=request.recipient_alias,
            provider_transaction_id=payment.transaction_id,
            payment_url=payment.payment_url,
        )
        return PaymentOutcome(
            OutcomeStatus.PENDING,
            f"Please complete payment at: {payment.payment_url}",
            transaction_id=str(row.id),
            payment_url=payment.payment_url,
        )

    def _settle(self, request: PaymentRequest, recipient: str, reference: str) -> PaymentOutcome:
        row = self.transactions.create_transaction(
            from_did=request.sender_identity,
            to_did=recipient,
            amount=request.amount,
            currency=settings.currency,
            channel=request.channel.value,
            status=TransactionStatus.COMPLETED,
            reference=reference,
            alias_used=request.recipient_alias,
        )
        self.ledger.record_transfer(
            sender=request.sender_identity,
            recipient=recipient,
            amount=request.amount,
            reference=reference,
            metadata={"channel": request.channel.value, "transaction_id": str(row.id)},
        )
        return PaymentOutcome(OutcomeStatus.COMPLETED, TRANSFER_COMPLETE, transaction_id=str(row.id))

    async def check_status(self, transaction_id: uuid.UUID) -> Optional[str]:
        """Provider status of a mobile money transaction; None if unknown locally"""
        row = self.transactions.get_transaction(transaction_id)
        if row is None:
            return None
        if not row.provider_transaction_id:
            return row.status
        return await self.mobile_money.check_status(row.provider_transaction_id)
