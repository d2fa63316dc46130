"""API package initialization."""

from dealer_crm.api.auto_response import router as auto_response_router
from dealer_crm.api.cron import router as cron_router
from dealer_crm.api.leads import router as leads_router
from dealer_crm.api.notifications import router as notifications_router
from dealer_crm.api.pipeline import router as pipeline_router

__all__ = [
    "auto_response_router",
    "cron_router",
    "leads_router",
    "notifications_router",
    "pipeline_router",
]
