"""Data access layer for accounts, fraud scores, ledger, payments and USSD sessions"""

import uuid
from datetime import datetime
from decimal import Decimal
from functools import wraps
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from payflex_gateway.domain.exceptions import SessionConflict, StorageUnavailable
from payflex_gateway.domain.models import (
    Account, LedgerEvent, LedgerEventType, MenuState, TransactionStatus, UssdSession,
)
from payflex_gateway.infrastructure.database.models import (
    AccountRecord,
    AliasRecord,
    FraudScoreRecord,
    LedgerEventRecord,
    MerchantFee,
    PaymentTransaction,
    RiskSignal,
    UssdSessionRecord,
    UtilityPayment,
)
from payflex_gateway.utils.time_utils import as_utc, utcnow


def storage_guard(method):
    """Translate SQLAlchemy failures into StorageUnavailable"""

    @wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Storage error in {method.__name__}: {e}") from e

    return wrapper


def commit(db: Session) -> None:
    """Commit the unit of work, rolling back and translating on failure"""
    try:
        db.commit()
    except (StaleDataError, IntegrityError) as e:
        db.rollback()
        raise SessionConflict(f"Concurrent modification detected: {e}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Commit failed: {e}") from e


def _to_account(row: AccountRecord) -> Account:
    return Account(
        did=row.did,
        full_name=row.full_name,
        email=row.email,
        phone_number=row.phone_number,
        balance=Decimal(row.balance),
    )


class AccountRepository:
    """Identity directory, alias registry and balance provider"""

    def __init__(self, db: Session):
        self.db = db

    @storage_guard
    def create_account(
        self,
        did: str,
        full_name: str,
        email: str,
        phone_number: str,
        balance: Decimal = Decimal("0"),
    ) -> Account:
        """Register an account together with its phone and email aliases"""
        row = AccountRecord(did=did, full_name=full_name, email=email, phone_number=phone_number, balance=balance)
        self.db.add(row)
        self.db.add(AliasRecord(alias_type="phone", alias_value=phone_number, did=did))
        self.db.add(AliasRecord(alias_type="email", alias_value=email, did=did))
        self.db.flush()
        return _to_account(row)

    @storage_guard
    def get_by_did(self, did: str) -> Optional[Account]:
        row = self.db.get(AccountRecord, did)
        return _to_account(row) if row else None

    @storage_guard
    def get_by_phone(self, phone_number: str) -> Optional[Account]:
        row = self.db.execute(
            select(AccountRecord).where(AccountRecord.phone_number == phone_number)
        ).scalar_one_or_none()
        return _to_account(row) if row else None

    @storage_guard
    def resolve_alias(self, alias_type: str, alias_value: str) -> Optional[str]:
        """Return the DID registered for an alias, if any"""
        return self.db.execute(
            select(AliasRecord.did).where(
                AliasRecord.alias_type == alias_type,
                AliasRecord.alias_value == alias_value,
            )
        ).scalar_one_or_none()

    @storage_guard
    def get_balance(self, did: str) -> Optional[Decimal]:
        balance = self.db.execute(
            select(AccountRecord.balance).where(AccountRecord.did == did)
        ).scalar_one_or_none()
        return Decimal(balance) if balance is not None else None


class FraudScoreRepository:
    """Internal risk signals and latest composite fraud scores"""

    def __init__(self, db: Session):
        self.db = db

    @storage_guard
    def get_internal_score(self, did: str) -> Optional[int]:
        row = self.db.get(RiskSignal, did)
        return row.internal_score if row else None

    @storage_guard
    def set_internal_score(self, did: str, internal_score: int) -> None:
        """Store the offline-derived historical risk figure"""
        row = self.db.get(RiskSignal, did)
        if row is None:
            self.db.add(RiskSignal(did=did, internal_score=internal_score, updated_at=utcnow()))
        else:
            row.internal_score = internal_score
            row.updated_at = utcnow()
        self.db.flush()

    @storage_guard
    def get_score(self, did: str) -> Optional[int]:
        row = self.db.get(FraudScoreRecord, did)
        return row.score if row else None

    @storage_guard
    def upsert_score(self, did: str, score: int) -> None:
        """Overwrite the subject's latest composite score (last writer wins)"""
        row = self.db.get(FraudScoreRecord, did)
        if row is None:
            self.db.add(FraudScoreRecord(did=did, score=score, last_updated=utcnow()))
        else:
            row.score = score
            row.last_updated = utcnow()
        self.db.flush()


def _to_event(row: LedgerEventRecord) -> LedgerEvent:
    return LedgerEvent(
        event_id=row.event_id,
        subject_identity=row.did,
        event_type=LedgerEventType(row.event_type),
        amount=Decimal(row.amount),
        counterparty_identity=row.counterparty_did,
        metadata=dict(row.event_metadata or {}),
        timestamp=row.timestamp,
        reference=row.reference,
    )


class LedgerRepository:
    """Append-only store of ledger events and their side records"""

    def __init__(self, db: Session):
        self.db = db

    @storage_guard
    def append(self, event: LedgerEvent) -> LedgerEvent:
        """Insert an event and return it with its assigned event_id"""
        timestamp = as_utc(event.timestamp) if event.timestamp else utcnow()
        row = LedgerEventRecord(
            did=event.subject_identity,
            event_type=event.event_type.value,
            amount=event.amount,
            counterparty_did=event.counterparty_identity,
            event_metadata=event.metadata,
            reference=event.reference,
            timestamp=timestamp,
        )
        self.db.add(row)
        self.db.flush()  # Assigns event_id

        metadata = event.metadata or {}
        if event.event_type == LedgerEventType.UTILITY_PAYMENT:
            self.db.add(
                UtilityPayment(
                    event_id=row.event_id,
                    did=event.subject_identity,
                    provider=metadata.get("utilityName", ""),
                    payment_amount=event.amount,
                    payment_type=metadata.get("paymentType", "BILL_PAYMENT"),
                    transaction_ref=metadata.get("transactionRef", ""),
                    location=metadata.get("location", ""),
                    payment_time=timestamp,
                )
            )
        elif event.event_type == LedgerEventType.MERCHANT_FEE:
            self.db.add(
                MerchantFee(
                    event_id=row.event_id,
                    merchant_did=event.subject_identity,
                    txn_id=metadata.get("txnId", ""),
                    fee_amount=event.amount,
                )
            )
        self.db.flush()

        return _to_event(row)

    @storage_guard
    def find_by_reference(self, reference: str) -> List[LedgerEvent]:
        rows = self.db.execute(
            select(LedgerEventRecord)
            .where(LedgerEventRecord.reference == reference)
            .order_by(LedgerEventRecord.event_id)
        ).scalars()
        return [_to_event(row) for row in rows]

    def iter_events(
        self,
        did: str,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
        event_types: Sequence[LedgerEventType] = (),
    ) -> Iterator[LedgerEvent]:
        """Run the filtered query, newest first, ties broken by event_id"""
        stmt = select(LedgerEventRecord).where(LedgerEventRecord.did == did)
        if from_time is not None:
            stmt = stmt.where(LedgerEventRecord.timestamp >= as_utc(from_time))
        if to_time is not None:
            stmt = stmt.where(LedgerEventRecord.timestamp <= as_utc(to_time))
        if event_types:
            stmt = stmt.where(LedgerEventRecord.event_type.in_([t.value for t in event_types]))
        stmt = stmt.order_by(LedgerEventRecord.timestamp.desc(), LedgerEventRecord.event_id.desc())

        try:
            rows = self.db.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Ledger query failed: {e}") from e

        for row in rows:
            yield _to_event(row)


class TransactionRepository:
    """Repository for payment transaction rows"""

    def __init__(self, db: Session):
        self.db = db

    @storage_guard
    def create_transaction(
        self,
        from_did: str,
        to_did: str,
        amount: Decimal,
        currency: str,
        channel: str,
        status: TransactionStatus,
        reference: str,
        alias_used: Optional[str] = None,
        provider_transaction_id: Optional[str] = None,
        payment_url: Optional[str] = None,
    ) -> PaymentTransaction:
        """Persist a transaction row without committing"""
        now = utcnow()
        row = PaymentTransaction(
            from_did=from_did,
            to_did=to_did,
            amount=amount,
            fee_amount=Decimal("0"),
            currency=currency,
            channel=channel.upper(),
            status=status.value,
            alias_used=alias_used,
            reference=reference,
            provider_transaction_id=provider_transaction_id,
            payment_url=payment_url,
            initiated_at=now,
            completed_at=now if status == TransactionStatus.COMPLETED else None,
        )
        self.db.add(row)
        self.db.flush()  # Get ID without committing
        return row

    @storage_guard
    def get_transaction(self, transaction_id: uuid.UUID) -> Optional[PaymentTransaction]:
        return self.db.get(PaymentTransaction, transaction_id)


class SessionRepository:
    """Key-value store of USSD sessions keyed by carrier session id"""

    def __init__(self, db: Session):
        self.db = db

    @storage_guard
    def get(self, session_id: str) -> Optional[UssdSession]:
        row = self.db.get(UssdSessionRecord, session_id)
        if row is None:
            return None
        return UssdSession(
            session_id=row.session_id,
            phone_number=row.phone_number,
            current_menu=MenuState(row.current_menu),
            temp_data=dict(row.temp_data or {}),
            initiated_at=row.initiated_at,
            last_interaction_at=row.last_interaction_at,
            is_active=row.is_active,
            last_text=row.last_text or "",
            last_response=row.last_response or "",
        )

    def save(self, session: UssdSession) -> None:
        """Insert or update the session; stale versions raise SessionConflict"""
        try:
            row = self.db.get(UssdSessionRecord, session.session_id)
            values: Dict[str, Any] = {
                "phone_number": session.phone_number,
                "current_menu": session.current_menu.value,
                "temp_data": dict(session.temp_data),
                "initiated_at": session.initiated_at,
                "last_interaction_at": session.last_interaction_at,
                "is_active": session.is_active,
                "last_text": session.last_text,
                "last_response": session.last_response,
            }
            if row is None:
                self.db.add(UssdSessionRecord(session_id=session.session_id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            self.db.flush()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            raise SessionConflict(f"Session {session.session_id} changed concurrently") from e
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Could not save session {session.session_id}: {e}") from e
