"""Endpoints driven by the platform scheduler, guarded by the cron secret."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.database import get_db
from dealer_crm.schemas.matching import VehiclePublishedRequest, VehiclePublishedResponse
from dealer_crm.services.inventory_matcher import InventoryMatcher
from dealer_crm.services.notification_service import NotificationService
from dealer_crm.utils.security import verify_cron_secret

router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/vehicle-published", response_model=VehiclePublishedResponse)
async def vehicle_published(
    request: VehiclePublishedRequest,
    db: AsyncSession = Depends(get_db),
) -> VehiclePublishedResponse:
    """Notify the team about open leads interested in a newly published vehicle."""
    outcome = await InventoryMatcher(db).notify_vehicle_published(request.vehicle_id)
    return VehiclePublishedResponse(**outcome)


@router.post("/cleanup-notifications")
async def cleanup_notifications(
    days_old: int = Query(30, ge=1),
    db: AsyncSession = Depends(get_db),
) -> dict:
    deleted = await NotificationService(db).delete_old_read(days_old)
    return {"deleted": deleted}
