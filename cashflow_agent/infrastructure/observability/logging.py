"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from cashflow_agent.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


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


def log_generation(
    request_id: str,
    user_id: str,
    suggestion_count: int,
    top_confidence: float | None,
    duration_ms: float,
) -> None:
    """Log structured generation outcome"""
    logging.info(
        "Suggestions generated",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "generation_complete",
            "suggestion_count": suggestion_count,
            "top_confidence": top_confidence,
            "duration_ms": duration_ms,
        },
    )


def log_materialization(
    request_id: str,
    user_id: str,
    suggestion_id: str,
    kind: str,
    decision: str,
    duration_ms: float,
) -> None:
    """Log structured decision outcome for acceptance analysis"""
    logging.info(
        "Suggestion decided",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "suggestion_id": suggestion_id,
            "step": "decision_complete",
            "kind": kind,
            "decision": decision,
            "duration_ms": duration_ms,
        },
    )


def log_impact_analysis(
    request_id: str,
    suggestion_id: str,
    min_balance_delta: int | None,
    duration_ms: float,
) -> None:
    logging.info(
        "Impact analysis served",
        extra={
            "request_id": request_id,
            "suggestion_id": suggestion_id,
            "step": "impact_complete",
            "min_balance_delta": min_balance_delta,
            "duration_ms": duration_ms,
        },
    )
