from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.database import async_session_maker, get_db
from dealer_crm.models.notification import NotificationType
from dealer_crm.models.user import User
from dealer_crm.schemas.notification import (
    NotificationListResponse,
    NotificationMarkReadResponse,
    NotificationPreferenceItem,
    NotificationPreferencesResponse,
    NotificationPreferencesUpdateRequest,
    NotificationResponse,
)
from dealer_crm.services.notification_realtime import hub
from dealer_crm.services.notification_service import NotificationService
from dealer_crm.utils.logging import get_logger
from dealer_crm.utils.security import get_current_user, load_team_member


router = APIRouter(prefix="/notifications", tags=["Notifications"])
logger = get_logger("api.notifications")


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    type: Optional[NotificationType] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationListResponse:
    service = NotificationService(db)
    rows, total = await service.list_notifications(
        current_user.id,
        unread_only=unread_only,
        notification_type=type,
        page=page,
        page_size=page_size,
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in rows],
        total=total,
        unread_count=await service.unread_count(current_user.id),
        page=page,
        page_size=page_size,
    )


@router.get("/unread/count", response_model=int)
async def get_unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> int:
    return await NotificationService(db).unread_count(current_user.id)


@router.post("/read-all", response_model=NotificationMarkReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationMarkReadResponse:
    updated = await NotificationService(db).mark_all_as_read(current_user.id)
    return NotificationMarkReadResponse(success=True, updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationMarkReadResponse)
async def mark_notification_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationMarkReadResponse:
    await NotificationService(db).mark_as_read(current_user.id, notification_id)
    return NotificationMarkReadResponse(success=True, updated=1)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> None:
    await NotificationService(db).delete_notification(current_user.id, notification_id)


@router.get("/preferences", response_model=NotificationPreferencesResponse)
async def get_preferences(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationPreferencesResponse:
    prefs = await NotificationService(db).get_preferences(current_user.id)
    return NotificationPreferencesResponse(
        items=[
            NotificationPreferenceItem(notification_type=nt, enabled=enabled)
            for nt, enabled in prefs.items()
        ]
    )


@router.put("/preferences", response_model=NotificationPreferencesResponse)
async def update_preferences(
    request: NotificationPreferencesUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationPreferencesResponse:
    prefs = await NotificationService(db).update_preferences(
        current_user.id, {item.notification_type: item.enabled for item in request.items}
    )
    return NotificationPreferencesResponse(
        items=[
            NotificationPreferenceItem(notification_type=nt, enabled=enabled)
            for nt, enabled in prefs.items()
        ]
    )


@router.websocket("/ws")
async def notifications_ws(websocket: WebSocket) -> None:
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008)
        return
    async with async_session_maker() as db:
        user = await load_team_member(db, token)
    if user is None:
        await websocket.close(code=1008)
        return
    await websocket.accept()
    hub.register(user.id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.unregister(user.id, websocket)
    except Exception as exc:
        logger.warning("notification_socket_error", user_id=user.id, error=str(exc))
        hub.unregister(user.id, websocket)
        await websocket.close()
