"""Structured logging utilities."""

import logging
import sys
from typing import Any, Optional

import structlog


def setup_logging(debug: bool = False) -> None:
    """Configure structured logging for the application."""

    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance for the given name."""
    return structlog.get_logger(name)


class LeadLogger:
    """Logger bound to a single lead, used along the lifecycle paths."""

    def __init__(self, lead_id: int, dealer_id: Optional[int] = None):
        self.logger = get_logger("leads.lifecycle")
        self.lead_id = lead_id
        self.dealer_id = dealer_id

    def log(self, event: str, **kwargs: Any) -> None:
        """Log a lead event."""
        self.logger.info(event, lead_id=self.lead_id, dealer_id=self.dealer_id, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self.logger.warning(event, lead_id=self.lead_id, dealer_id=self.dealer_id, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        """Log a lead error."""
        self.logger.error(event, lead_id=self.lead_id, dealer_id=self.dealer_id, **kwargs)

    def status_changed(self, old_status: str, new_status: str, actor_id: int) -> None:
        self.logger.info(
            "lead_status_changed",
            lead_id=self.lead_id,
            dealer_id=self.dealer_id,
            old_status=old_status,
            new_status=new_status,
            actor_id=actor_id,
        )

    def assigned(self, old_assignee_id: Optional[int], new_assignee_id: Optional[int]) -> None:
        self.logger.info(
            "lead_assigned",
            lead_id=self.lead_id,
            dealer_id=self.dealer_id,
            old_assignee_id=old_assignee_id,
            new_assignee_id=new_assignee_id,
        )
