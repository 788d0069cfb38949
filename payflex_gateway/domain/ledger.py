"""Double-entry ledger recording on top of the append-only event store"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, Optional, Tuple

from payflex_gateway.domain.exceptions import InvalidAmountError
from payflex_gateway.domain.models import LedgerEvent, LedgerEventType
from payflex_gateway.infrastructure.database.repositories import LedgerRepository


class LedgerQuery:
    """
    Finite, restartable view over one subject's events, newest first.

    Nothing is read until iteration; each iteration re-runs the query, so a
    LedgerQuery can be held and iterated again to observe later events.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        subject_identity: str,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
        event_types: Tuple[LedgerEventType, ...] = (),
    ):
        self._repository = repository
        self.subject_identity = subject_identity
        self.from_time = from_time
        self.to_time = to_time
        self.event_types = event_types

    def of_type(self, *event_types: LedgerEventType) -> "LedgerQuery":
        """Narrow to the given event types"""
        return LedgerQuery(
            self._repository,
            self.subject_identity,
            self.from_time,
            self.to_time,
            tuple(event_types),
        )

    def __iter__(self) -> Iterator[LedgerEvent]:
        return self._repository.iter_events(
            self.subject_identity,
            self.from_time,
            self.to_time,
            self.event_types,
        )


class LedgerRecorder:
    """Append-only ledger; corrections are new compensating events"""

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def record(self, event: LedgerEvent) -> LedgerEvent:
        """Append an event and return it with its assigned event_id"""
        if event.amount < 0:
            raise InvalidAmountError("Ledger amounts are unsigned; the event type carries direction")
        return self.repository.append(event)

    def query(
        self,
        subject_identity: str,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
    ) -> LedgerQuery:
        return LedgerQuery(self.repository, subject_identity, from_time, to_time)

    def record_transfer(
        self,
        sender: str,
        recipient: str,
        amount: Decimal,
        reference: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Tuple[LedgerEvent, LedgerEvent]:
        """
        Write the TRANSFER_OUT/TRANSFER_IN pair for one transfer.

        Idempotent on reference: replaying a reference that is already
        recorded returns the existing pair instead of writing a second one.
        """
        existing = self.repository.find_by_reference(reference)
        by_type = {e.event_type: e for e in existing}
        if LedgerEventType.TRANSFER_OUT in by_type and LedgerEventType.TRANSFER_IN in by_type:
            return by_type[LedgerEventType.TRANSFER_OUT], by_type[LedgerEventType.TRANSFER_IN]

        metadata = dict(metadata or {})
        out_event = by_type.get(LedgerEventType.TRANSFER_OUT) or self.record(
            LedgerEvent(
                subject_identity=sender,
                event_type=LedgerEventType.TRANSFER_OUT,
                amount=amount,
                counterparty_identity=recipient,
                metadata=metadata,
                reference=reference,
            )
        )
        in_event = by_type.get(LedgerEventType.TRANSFER_IN) or self.record(
            LedgerEvent(
                subject_identity=recipient,
                event_type=LedgerEventType.TRANSFER_IN,
                amount=amount,
                counterparty_identity=sender,
                metadata=metadata,
                reference=reference,
                timestamp=out_event.timestamp,
            )
        )
        return out_event, in_event
