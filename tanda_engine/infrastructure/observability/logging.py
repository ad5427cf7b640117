"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "tanda-engine"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_retry_outcome(deposit_id: str, attempt_count: int, outcome: str, error: str | None = None) -> None:
    """Log the result of one automatic or manual deposit retry"""
    logging.getLogger("tanda_engine.retry").info(
        "Deposit retry processed",
        extra={
            "deposit_id": deposit_id,
            "step": "retry_complete",
            "attempt_count": attempt_count,
            "outcome": outcome,
            "error": error,
        },
    )


def log_expulsion(deposit_id: str, tanda_id: str, wallet_address: str, ledger_notified: bool) -> None:
    logging.getLogger("tanda_engine.expulsion").warning(
        "Participant expelled for non-payment",
        extra={
            "deposit_id": deposit_id,
            "tanda_id": tanda_id,
            "wallet_address": wallet_address,
            "step": "expulsion_complete",
            "ledger_notified": ledger_notified,
        },
    )


def log_advance(tanda_id: str, decision: str, forwarded: bool) -> None:
    logging.getLogger("tanda_engine.advance").info(
        "Cycle evaluated",
        extra={
            "tanda_id": tanda_id,
            "step": "advance_evaluated",
            "decision": decision,
            "forwarded_to_ledger": forwarded,
        },
    )
