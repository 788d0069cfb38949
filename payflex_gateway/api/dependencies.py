"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from payflex_gateway.domain.fraud import FraudScorer
from payflex_gateway.domain.ledger import LedgerRecorder
from payflex_gateway.domain.payments import PaymentOrchestrator
from payflex_gateway.domain.ussd import SessionLocks, UssdSessionMachine
from payflex_gateway.infrastructure.clients.mobile_money import MobileMoneyClient
from payflex_gateway.infrastructure.clients.risk_vendor import RiskVendorClient
from payflex_gateway.infrastructure.database.repositories import (
    AccountRepository,
    FraudScoreRepository,
    LedgerRepository,
    SessionRepository,
    TransactionRepository,
)
from payflex_gateway.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_session_locks(request: Request) -> SessionLocks:
    """Process-wide USSD session lock registry"""
    return request.app.state.session_locks


def get_risk_vendor_client() -> RiskVendorClient:
    """Provide risk vendor client instance"""
    return RiskVendorClient()


def get_mobile_money_client() -> MobileMoneyClient:
    """Provide mobile money client instance"""
    return MobileMoneyClient()


def get_fraud_scorer(
    db: Session = Depends(get_db),
    vendor: RiskVendorClient = Depends(get_risk_vendor_client),
) -> FraudScorer:
    return FraudScorer(AccountRepository(db), FraudScoreRepository(db), vendor)


def get_ledger_recorder(db: Session = Depends(get_db)) -> LedgerRecorder:
    return LedgerRecorder(LedgerRepository(db))


def get_payment_orchestrator(
    db: Session = Depends(get_db),
    fraud_scorer: FraudScorer = Depends(get_fraud_scorer),
    ledger: LedgerRecorder = Depends(get_ledger_recorder),
    mobile_money: MobileMoneyClient = Depends(get_mobile_money_client),
) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        AccountRepository(db),
        TransactionRepository(db),
        fraud_scorer,
        ledger,
        mobile_money,
    )


def get_ussd_machine(
    db: Session = Depends(get_db),
    fraud_scorer: FraudScorer = Depends(get_fraud_scorer),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
    locks: SessionLocks = Depends(get_session_locks),
) -> UssdSessionMachine:
    return UssdSessionMachine(
        db,
        SessionRepository(db),
        AccountRepository(db),
        fraud_scorer,
        orchestrator,
        locks,
    )
