"""Pytest fixtures for testing"""

import pytest
from decimal import Decimal
from typing import Generator
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from payflex_gateway.api.dependencies import get_mobile_money_client, get_risk_vendor_client
from payflex_gateway.api.main import create_app
from payflex_gateway.domain.fraud import FraudScorer
from payflex_gateway.domain.ledger import LedgerRecorder
from payflex_gateway.domain.models import Account
from payflex_gateway.domain.payments import PaymentOrchestrator
from payflex_gateway.domain.ussd import SessionLocks, UssdSessionMachine
from payflex_gateway.infrastructure.clients.mobile_money import MobileMoneyClient, ProviderPayment
from payflex_gateway.infrastructure.clients.risk_vendor import RiskVendorClient
from payflex_gateway.infrastructure.database.models import Base
from payflex_gateway.infrastructure.database.repositories import (
    AccountRepository,
    FraudScoreRepository,
    LedgerRepository,
    SessionRepository,
    TransactionRepository,
)
from payflex_gateway.infrastructure.database.session import get_db


# Test database: one shared in-memory connection
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ALICE_DID = "did:bw:alice"
ALICE_PHONE = "71000001"
BOB_DID = "did:bw:bob"
BOB_PHONE = "72000002"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def accounts(db: Session) -> AccountRepository:
    """Directory seeded with two account holders"""
    repo = AccountRepository(db)
    repo.create_account(ALICE_DID, "Alice Molefe", "alice@example.com", ALICE_PHONE, Decimal("500.00"))
    repo.create_account(BOB_DID, "Bob Kgosi", "bob@example.com", BOB_PHONE, Decimal("25.50"))
    db.commit()
    return repo


@pytest.fixture
def alice(accounts: AccountRepository) -> Account:
    return accounts.get_by_did(ALICE_DID)


@pytest.fixture
def vendor() -> AsyncMock:
    """Risk vendor that reports no external risk"""
    client = AsyncMock(spec=RiskVendorClient)
    client.score_order.return_value = 0
    return client


@pytest.fixture
def mobile_money() -> AsyncMock:
    client = AsyncMock(spec=MobileMoneyClient)
    client.initialize_payment.return_value = ProviderPayment(
        transaction_id="gsma_tx_1",
        payment_url="https://pay.example.com/gsma_tx_1",
    )
    client.check_status.return_value = "PENDING"
    return client


@pytest.fixture
def scores(db: Session) -> FraudScoreRepository:
    return FraudScoreRepository(db)


@pytest.fixture
def fraud_scorer(accounts: AccountRepository, scores: FraudScoreRepository, vendor: AsyncMock) -> FraudScorer:
    return FraudScorer(accounts, scores, vendor)


@pytest.fixture
def ledger(db: Session) -> LedgerRecorder:
    return LedgerRecorder(LedgerRepository(db))


@pytest.fixture
def transactions(db: Session) -> TransactionRepository:
    return TransactionRepository(db)


@pytest.fixture
def orchestrator(
    accounts: AccountRepository,
    transactions: TransactionRepository,
    fraud_scorer: FraudScorer,
    ledger: LedgerRecorder,
    mobile_money: AsyncMock,
) -> PaymentOrchestrator:
    return PaymentOrchestrator(accounts, transactions, fraud_scorer, ledger, mobile_money)


@pytest.fixture
def machine(
    db: Session,
    accounts: AccountRepository,
    fraud_scorer: FraudScorer,
    orchestrator: PaymentOrchestrator,
) -> UssdSessionMachine:
    return UssdSessionMachine(db, SessionRepository(db), accounts, fraud_scorer, orchestrator, SessionLocks())


@pytest.fixture
def client(db: Session, accounts: AccountRepository, vendor: AsyncMock, mobile_money: AsyncMock) -> TestClient:
    """Create FastAPI test client with test database and fake external clients"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_risk_vendor_client] = lambda: vendor
    app.dependency_overrides[get_mobile_money_client] = lambda: mobile_money
    return TestClient(app)
