"""Schemas package initialization."""

from dealer_crm.schemas.auto_response import (
    AutoResponseConfigResponse,
    AutoResponseConfigUpdate,
    TemplateContent,
    TemplatePreviewResponse,
    TemplateValidationResponse,
    TemplateVariablesResponse,
)
from dealer_crm.schemas.lead import (
    ConversationLeadResponse,
    LeadActivityCreate,
    LeadActivityResponse,
    LeadCreate,
    LeadCreatedResponse,
    LeadFromConversation,
    LeadListResponse,
    LeadPreferencesPayload,
    LeadPreferencesResponse,
    LeadResponse,
    LeadUpdate,
)
from dealer_crm.schemas.matching import (
    MatchedVehicleResponse,
    MatchResponse,
    VehiclePublishedRequest,
    VehiclePublishedResponse,
)
from dealer_crm.schemas.notification import (
    NotificationListResponse,
    NotificationMarkReadResponse,
    NotificationPreferenceItem,
    NotificationPreferencesResponse,
    NotificationPreferencesUpdateRequest,
    NotificationResponse,
)
from dealer_crm.schemas.pipeline import (
    OpportunityCreate,
    OpportunityListResponse,
    OpportunityResponse,
    OpportunityUpdate,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
    TestDriveCreate,
    TestDriveResponse,
    TestDriveUpdate,
)

__all__ = [
    # Lead
    "LeadCreate",
    "LeadCreatedResponse",
    "LeadFromConversation",
    "LeadUpdate",
    "LeadResponse",
    "LeadListResponse",
    "ConversationLeadResponse",
    "LeadActivityCreate",
    "LeadActivityResponse",
    "LeadPreferencesPayload",
    "LeadPreferencesResponse",
    # Pipeline
    "OpportunityCreate",
    "OpportunityUpdate",
    "OpportunityResponse",
    "OpportunityListResponse",
    "TaskCreate",
    "TaskUpdate",
    "TaskResponse",
    "TestDriveCreate",
    "TestDriveUpdate",
    "TestDriveResponse",
    # Notification
    "NotificationResponse",
    "NotificationListResponse",
    "NotificationMarkReadResponse",
    "NotificationPreferenceItem",
    "NotificationPreferencesResponse",
    "NotificationPreferencesUpdateRequest",
    # Auto-response
    "AutoResponseConfigResponse",
    "AutoResponseConfigUpdate",
    "TemplateContent",
    "TemplatePreviewResponse",
    "TemplateValidationResponse",
    "TemplateVariablesResponse",
    # Matching
    "MatchedVehicleResponse",
    "MatchResponse",
    "VehiclePublishedRequest",
    "VehiclePublishedResponse",
]
