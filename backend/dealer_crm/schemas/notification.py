from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field

from dealer_crm.models.notification import NotificationType
from dealer_crm.schemas.common import ORMResponse


class NotificationResponse(ORMResponse):
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    page_size: int


class NotificationMarkReadResponse(BaseModel):
    success: bool
    updated: int = 0


class NotificationPreferenceItem(BaseModel):
    notification_type: NotificationType
    enabled: bool


class NotificationPreferencesResponse(BaseModel):
    items: List[NotificationPreferenceItem]


class NotificationPreferencesUpdateRequest(BaseModel):
    items: List[NotificationPreferenceItem]
