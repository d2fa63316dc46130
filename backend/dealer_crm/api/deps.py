"""Service wiring shared by the routers."""

from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.config import settings
from dealer_crm.database import get_db
from dealer_crm.services.auto_response import AutoResponseScheduler
from dealer_crm.services.config_cache import ConfigCache
from dealer_crm.services.lead_service import LeadService


def get_config_cache(request: Request) -> ConfigCache:
    cache = getattr(request.app.state, "config_cache", None)
    if cache is None:
        cache = ConfigCache(settings.auto_response_config_ttl_seconds)
        request.app.state.config_cache = cache
    return cache


def get_scheduler(
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: ConfigCache = Depends(get_config_cache),
) -> AutoResponseScheduler:
    worker = getattr(request.app.state, "worker", None)
    on_enqueue: Optional[Callable] = worker.wake_on_commit(db) if worker is not None else None
    return AutoResponseScheduler(db, cache, on_enqueue=on_enqueue)


def get_lead_service(
    db: AsyncSession = Depends(get_db),
    scheduler: AutoResponseScheduler = Depends(get_scheduler),
) -> LeadService:
    return LeadService(db, scheduler=scheduler)
