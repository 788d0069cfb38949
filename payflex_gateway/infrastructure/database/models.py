"""SQLAlchemy ORM models for accounts, payments, ledger and USSD sessions"""

import uuid
from sqlalchemy import (
    Column, String, BigInteger, Boolean, DateTime, Integer, Numeric, Text, JSON, UniqueConstraint, event,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from payflex_gateway.domain.exceptions import ImmutableLedgerError

Base = declarative_base()

# BIGINT primary keys only autoincrement on SQLite when declared as INTEGER
EventIdType = BigInteger().with_variant(Integer, "sqlite")


class AccountRecord(Base):
    """Account holder keyed by canonical identity (DID)"""

    __tablename__ = "account"

    did = Column(Text, primary_key=True)
    full_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone_number = Column(String(16), nullable=False, unique=True, index=True)
    balance = Column(Numeric(18, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AliasRecord(Base):
    """Human-memorable alias (phone, email) pointing at a DID"""

    __tablename__ = "alias"
    __table_args__ = (UniqueConstraint("alias_type", "alias_value", name="uq_alias_type_value"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    alias_type = Column(String(16), nullable=False)
    alias_value = Column(Text, nullable=False)
    did = Column(Text, nullable=False, index=True)


class RiskSignal(Base):
    """Internally derived historical risk figure, maintained offline"""

    __tablename__ = "risk_signal"

    did = Column(Text, primary_key=True)
    internal_score = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FraudScoreRecord(Base):
    """Latest composite fraud score per subject (overwritten each assessment)"""

    __tablename__ = "fraud_score"

    did = Column(Text, primary_key=True)
    score = Column(Integer, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False)


class LedgerEventRecord(Base):
    """Append-only ledger entry"""

    __tablename__ = "ledger_event"
    __table_args__ = (
        UniqueConstraint("reference", "event_type", name="uq_ledger_reference_type"),
    )

    event_id = Column(EventIdType, primary_key=True, autoincrement=True)
    did = Column(Text, nullable=False, index=True)
    event_type = Column(String(32), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    counterparty_did = Column(Text, nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    reference = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


@event.listens_for(LedgerEventRecord, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise ImmutableLedgerError(f"Ledger event {target.event_id} cannot be modified")


@event.listens_for(LedgerEventRecord, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise ImmutableLedgerError(f"Ledger event {target.event_id} cannot be deleted")


class PaymentTransaction(Base):
    """Transaction row written for every dispatched payment"""

    __tablename__ = "payment_transaction"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    from_did = Column(Text, nullable=False, index=True)
    to_did = Column(Text, nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    fee_amount = Column(Numeric(18, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    channel = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False)
    alias_used = Column(Text, nullable=True)
    reference = Column(Text, nullable=False, unique=True)
    provider_transaction_id = Column(Text, nullable=True)
    payment_url = Column(Text, nullable=True)
    initiated_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class UssdSessionRecord(Base):
    """USSD dialogue state, guarded by an optimistic version counter"""

    __tablename__ = "ussd_session"

    session_id = Column(Text, primary_key=True)
    phone_number = Column(String(16), nullable=False)
    current_menu = Column(String(32), nullable=False)
    temp_data = Column(JSON, nullable=False, default=dict)
    initiated_at = Column(DateTime(timezone=True), nullable=False)
    last_interaction_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_text = Column(Text, nullable=False, default="")
    last_response = Column(Text, nullable=False, default="")
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class UtilityPayment(Base):
    """Side record for UTILITY_PAYMENT ledger events"""

    __tablename__ = "utility_payment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(EventIdType, nullable=False, index=True)
    did = Column(Text, nullable=False)
    provider = Column(Text, nullable=False, default="")
    payment_amount = Column(Numeric(18, 2), nullable=False)
    payment_type = Column(Text, nullable=False, default="BILL_PAYMENT")
    transaction_ref = Column(Text, nullable=False, default="")
    location = Column(Text, nullable=False, default="")
    payment_time = Column(DateTime(timezone=True), nullable=False)


class MerchantFee(Base):
    """Side record for MERCHANT_FEE ledger events"""

    __tablename__ = "merchant_fee"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(EventIdType, nullable=False, index=True)
    merchant_did = Column(Text, nullable=False)
    txn_id = Column(Text, nullable=False, default="")
    fee_amount = Column(Numeric(18, 2), nullable=False)
    paid_out = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
