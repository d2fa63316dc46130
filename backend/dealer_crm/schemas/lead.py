"""Lead schemas for request/response validation."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from dealer_crm.models.catalog import VehicleCondition, VehicleType
from dealer_crm.models.lead import LeadActivityType, LeadSource, LeadStatus
from dealer_crm.schemas.common import ORMResponse


class LeadCreate(BaseModel):
    """Public contact form / vehicle inquiry."""
    dealer_id: int
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    message: str = Field(..., min_length=1)
    vehicle_id: Optional[int] = None
    source: LeadSource = LeadSource.FORM


class LeadFromConversation(BaseModel):
    conversation_id: int
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    message: Optional[str] = None
    vehicle_id: Optional[int] = None


class LeadUpdate(BaseModel):
    """Partial update; only the fields sent are applied."""
    status: Optional[LeadStatus] = None
    assigned_to_id: Optional[int] = None
    notes: Optional[str] = None
    estimated_value: Optional[float] = Field(None, ge=0)
    next_follow_up: Optional[datetime] = None


class LeadCreatedResponse(ORMResponse):
    id: int
    status: LeadStatus
    is_duplicate: bool
    created_at: datetime


class LeadResponse(ORMResponse):
    id: int
    dealer_id: int
    vehicle_id: Optional[int] = None
    vehicle_title: Optional[str] = None
    conversation_id: Optional[int] = None
    name: str
    email: str
    phone: Optional[str] = None
    message: str
    source: LeadSource
    status: LeadStatus
    is_duplicate: bool
    assigned_to_id: Optional[int] = None
    responded_at: Optional[datetime] = None
    last_contact_at: Optional[datetime] = None
    next_follow_up: Optional[datetime] = None
    estimated_value: Optional[float] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class LeadListResponse(BaseModel):
    leads: List[LeadResponse]
    total: int
    page: int
    limit: int


class ConversationLeadResponse(BaseModel):
    lead: Optional[LeadResponse] = None


class LeadActivityCreate(BaseModel):
    type: LeadActivityType
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class LeadActivityResponse(ORMResponse):
    id: int
    lead_id: int
    user_id: int
    type: LeadActivityType
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    created_at: datetime


class LeadPreferencesPayload(BaseModel):
    brand_ids: List[int] = Field(default_factory=list)
    model_ids: List[int] = Field(default_factory=list)
    min_price: Optional[int] = Field(None, ge=0)
    max_price: Optional[int] = Field(None, ge=0)
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    vehicle_type: Optional[VehicleType] = None
    condition: Optional[VehicleCondition] = None


class LeadPreferencesResponse(ORMResponse):
    lead_id: int
    brand_ids: List[int]
    model_ids: List[int]
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    vehicle_type: Optional[str] = None
    condition: Optional[str] = None
