"""Utils package initialization."""

from dealer_crm.utils.logging import LeadLogger, get_logger, setup_logging
from dealer_crm.utils.time import Clock, as_utc, utc_now

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "LeadLogger",
    # Time
    "Clock",
    "as_utc",
    "utc_now",
]
