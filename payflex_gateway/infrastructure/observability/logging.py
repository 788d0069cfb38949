"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from payflex_gateway.utils.time_utils import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "payflex-gateway"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_ussd_turn(
    session_id: str,
    from_state: str,
    to_state: str,
    keep_session: bool,
    duration_ms: float,
    request_id: Optional[str] = None,
) -> None:
    """Log one carrier turn; phone numbers and amounts stay out of the record"""
    logging.getLogger("payflex_gateway.ussd").info(
        "USSD turn completed",
        extra={
            "request_id": request_id,
            "session_id": session_id,
            "step": "ussd_turn",
            "from_state": from_state,
            "to_state": to_state,
            "keep_session": keep_session,
            "duration_ms": duration_ms,
        },
    )


def log_payment(
    sender: str,
    channel: str,
    status: str,
    duration_ms: float,
    transaction_id: Optional[str] = None,
) -> None:
    """Log structured payment outcome for analysis"""
    logging.getLogger("payflex_gateway.payments").info(
        "Payment processed",
        extra={
            "sender": sender,
            "step": "payment_complete",
            "channel": channel,
            "payment_outcome": status,
            "transaction_id": transaction_id,
            "duration_ms": duration_ms,
        },
    )
