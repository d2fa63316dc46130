"""Models package initialization."""

from dealer_crm.models.auto_response import (
    AutoResponseConfig,
    AutoResponseJob,
    AutoResponseJobStatus,
    MessageTemplate,
    TemplateChannel,
)
from dealer_crm.models.catalog import (
    Brand,
    ListingStatus,
    Vehicle,
    VehicleCondition,
    VehicleModel,
    VehicleType,
)
from dealer_crm.models.lead import (
    Lead,
    LeadActivity,
    LeadActivityType,
    LeadPreferences,
    LeadSource,
    LeadStatus,
)
from dealer_crm.models.notification import Notification, NotificationPreference, NotificationType
from dealer_crm.models.pipeline import (
    LeadTask,
    Opportunity,
    OpportunityStatus,
    TaskPriority,
    TestDrive,
    TestDriveStatus,
)
from dealer_crm.models.user import Dealer, DealerRole, DealerStatus, User

__all__ = [
    # Dealer / team
    "Dealer",
    "DealerRole",
    "DealerStatus",
    "User",
    # Catalog
    "Brand",
    "VehicleModel",
    "Vehicle",
    "ListingStatus",
    "VehicleType",
    "VehicleCondition",
    # Lead
    "Lead",
    "LeadActivity",
    "LeadActivityType",
    "LeadPreferences",
    "LeadSource",
    "LeadStatus",
    # Pipeline
    "Opportunity",
    "OpportunityStatus",
    "LeadTask",
    "TaskPriority",
    "TestDrive",
    "TestDriveStatus",
    # Notification
    "Notification",
    "NotificationType",
    "NotificationPreference",
    # Auto-response
    "AutoResponseConfig",
    "AutoResponseJob",
    "AutoResponseJobStatus",
    "MessageTemplate",
    "TemplateChannel",
]
