"""USSD session state machine driving the send-money flow"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict

from sqlalchemy.orm import Session

from payflex_gateway.config import settings
from payflex_gateway.domain.exceptions import SessionConflict, StorageUnavailable
from payflex_gateway.domain.fraud import FraudScorer
from payflex_gateway.domain.models import (
    MenuState,
    PaymentChannel,
    PaymentRequest,
    UssdReply,
    UssdRequest,
    UssdSession,
)
from payflex_gateway.domain.payments import PaymentOrchestrator
from payflex_gateway.infrastructure.database.repositories import AccountRepository, SessionRepository, commit
from payflex_gateway.infrastructure.observability.logging import log_ussd_turn
from payflex_gateway.infrastructure.observability.metrics import record_ussd_turn
from payflex_gateway.utils.text_utils import is_canonical_identity, is_replayed_input, latest_token, parse_amount
from payflex_gateway.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

MAIN_MENU_TEXT = "1. Send Money\n2. Check Fraud Score\n3. View Balance\n4. Exit"
ENTER_RECIPIENT = "Enter recipient phone or DID:"
ENTER_AMOUNT = "Enter amount to send:"
INVALID_AMOUNT = "Invalid amount. Enter amount to send:"
INVALID_OPTION = "Invalid input. Returning to main menu."
GOODBYE = "Session ended. Goodbye."
CANCELED = "Transaction canceled. Goodbye."
NO_FRAUD_SCORE = "No fraud score on record yet."
USER_NOT_FOUND = "Error: User not found."
SENDER_NOT_FOUND = "Error: Sender not found."
RECIPIENT_NOT_FOUND = "Error: Recipient not found."
SERVICE_UNAVAILABLE = "Service temporarily unavailable. Please try again."

Handler = Callable[[UssdSession, str], Awaitable[str]]


class SessionLocks:
    """
    Per-session mutual exclusion for the load-mutate-save cycle.

    Locks are created on demand and dropped once no turn holds or awaits
    them, so the registry only grows with concurrently active sessions.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                del self._locks[session_id]

    def __len__(self) -> int:
        return len(self._locks)


class UssdSessionMachine:
    """
    Turns carrier requests into menu replies.

    States: MAIN_MENU -> SEND_MONEY_STEP1 -> SEND_MONEY_STEP2 -> terminal,
    plus terminal fraud score, balance and exit items. Empty text, an
    unknown session id, or a terminated session always (re)starts at
    MAIN_MENU. Every turn saves the session and commits before replying.
    """

    def __init__(
        self,
        db: Session,
        sessions: SessionRepository,
        accounts: AccountRepository,
        fraud_scorer: FraudScorer,
        orchestrator: PaymentOrchestrator,
        locks: SessionLocks,
    ):
        self.db = db
        self.sessions = sessions
        self.accounts = accounts
        self.fraud_scorer = fraud_scorer
        self.orchestrator = orchestrator
        self.locks = locks
        self._handlers: Dict[MenuState, Handler] = {
            MenuState.NEW: self._show_main_menu,
            MenuState.MAIN_MENU: self._main_menu,
            MenuState.SEND_MONEY_STEP1: self._send_money_recipient,
            MenuState.SEND_MONEY_STEP2: self._send_money_amount,
            MenuState.ENDED: self._show_main_menu,
        }

    async def handle(self, request: UssdRequest, request_id: str | None = None) -> UssdReply:
        """Process one turn; never raises, failures become a closing reply"""
        start_time = time.time()
        from_state = to_state = MenuState.NEW

        async with self.locks.hold(request.session_id):
            try:
                session, from_state, response = await self._turn(request)
                self.sessions.save(session)
                commit(self.db)
                to_state = session.current_menu
                reply = UssdReply(response=response, keep_session=session.is_active)
            except (SessionConflict, StorageUnavailable) as e:
                self.db.rollback()
                logger.error(f"USSD turn failed: {e}", extra={"session_id": request.session_id, "request_id": request_id})
                reply = UssdReply(response=SERVICE_UNAVAILABLE, keep_session=False)

        record_ussd_turn(from_state.value, to_state.value)
        log_ussd_turn(
            request.session_id,
            from_state.value,
            to_state.value,
            reply.keep_session,
            (time.time() - start_time) * 1000,
            request_id,
        )
        return reply

    async def _turn(self, request: UssdRequest) -> tuple[UssdSession, MenuState, str]:
        now = utcnow()
        text = request.text.strip()
        session = self.sessions.get(request.session_id)

        if session is None or not session.is_active:
            # Unknown or terminated id: a fresh dialogue, whatever the text
            session = UssdSession(
                session_id=request.session_id,
                phone_number=request.phone_number,
                current_menu=MenuState.NEW,
                temp_data={},
                initiated_at=now,
                last_interaction_at=now,
            )
            from_state = MenuState.NEW
            response = self._restart(session)
        elif text == "":
            # Carrier retransmit of the first turn restarts the dialogue
            from_state = session.current_menu
            response = self._restart(session)
        elif is_replayed_input(text, session.last_text):
            # Already handled: answer again without applying the transition twice
            from_state = session.current_menu
            logger.info("Replaying USSD reply for retransmitted input", extra={"session_id": session.session_id})
            response = session.last_response
        else:
            from_state = session.current_menu
            response = await self._handlers[session.current_menu](session, latest_token(text))
            session.last_text = text
            session.last_response = response

        session.last_interaction_at = now
        return session, from_state, response

    def _restart(self, session: UssdSession) -> str:
        # Input that only (re)opened the menu was not consumed
        session.current_menu = MenuState.MAIN_MENU
        session.temp_data = {}
        session.last_text = ""
        session.last_response = MAIN_MENU_TEXT
        return MAIN_MENU_TEXT

    def _end(self, session: UssdSession, response: str) -> str:
        session.current_menu = MenuState.ENDED
        session.is_active = False
        session.temp_data = {}
        return response

    async def _show_main_menu(self, session: UssdSession, token: str) -> str:
        return self._restart(session)

    async def _main_menu(self, session: UssdSession, token: str) -> str:
        if token.startswith("1"):
            session.current_menu = MenuState.SEND_MONEY_STEP1
            return ENTER_RECIPIENT
        if token.startswith("2"):
            account = self.accounts.get_by_phone(session.phone_number)
            if account is None:
                return self._end(session, USER_NOT_FOUND)
            score = self.fraud_scorer.latest_score(account.did)
            if score is None:
                return self._end(session, NO_FRAUD_SCORE)
            return self._end(session, f"Your Fraud Score is {score}.")
        if token.startswith("3"):
            account = self.accounts.get_by_phone(session.phone_number)
            if account is None:
                return self._end(session, USER_NOT_FOUND)
            balance = self.accounts.get_balance(account.did)
            return self._end(session, f"Your balance is P {balance:.2f}.")
        if token.startswith("4"):
            return self._end(session, GOODBYE)
        return INVALID_OPTION

    async def _send_money_recipient(self, session: UssdSession, token: str) -> str:
        if not token:
            return ENTER_RECIPIENT
        session.temp_data = {**session.temp_data, "recipient": token}
        session.current_menu = MenuState.SEND_MONEY_STEP2
        return ENTER_AMOUNT

    async def _send_money_amount(self, session: UssdSession, token: str) -> str:
        if token == "0":
            return self._end(session, CANCELED)

        amount = parse_amount(token)
        if amount is None or amount <= 0:
            return INVALID_AMOUNT

        sender = self.accounts.get_by_phone(session.phone_number)
        if sender is None:
            return self._end(session, SENDER_NOT_FOUND)

        recipient = session.temp_data.get("recipient", "")
        if not is_canonical_identity(recipient, settings.canonical_identity_prefix):
            recipient_account = self.accounts.get_by_phone(recipient)
            if recipient_account is None:
                return self._end(session, RECIPIENT_NOT_FOUND)
            recipient = recipient_account.did

        outcome = await self.orchestrator.send(
            PaymentRequest(
                sender_identity=sender.did,
                recipient_alias=recipient,
                amount=amount,
                channel=PaymentChannel.USSD,
            )
        )
        prefix = "Success: " if outcome.success else "Error: "
        return self._end(session, prefix + outcome.message)
