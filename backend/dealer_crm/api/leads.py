"""Leads API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.api.deps import get_lead_service
from dealer_crm.database import get_db
from dealer_crm.models.lead import LeadStatus
from dealer_crm.models.user import User
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
from dealer_crm.schemas.matching import MatchedVehicleResponse, MatchResponse
from dealer_crm.services.inventory_matcher import InventoryMatcher
from dealer_crm.services.lead_service import LeadService
from dealer_crm.utils.security import get_current_user, require_manager

router = APIRouter()


@router.post("/public", response_model=LeadCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_public_lead(
    request: LeadCreate,
    service: LeadService = Depends(get_lead_service),
) -> LeadCreatedResponse:
    """Contact form or vehicle inquiry from the marketplace. No authentication."""
    lead = await service.create_lead(
        dealer_id=request.dealer_id,
        name=request.name,
        email=request.email,
        message=request.message,
        phone=request.phone,
        vehicle_id=request.vehicle_id,
        source=request.source,
    )
    return LeadCreatedResponse.model_validate(lead)


@router.get("/", response_model=LeadListResponse)
async def list_leads(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[LeadStatus] = None,
    assigned_to: str = Query("all"),
    search: Optional[str] = None,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> LeadListResponse:
    """List the dealer's leads, newest first."""
    leads, total = await service.list_leads(
        current_user.dealer_id,
        current_user.id,
        status=status,
        assigned_to=assigned_to,
        search=search,
        page=page,
        limit=limit,
    )
    return LeadListResponse(
        leads=[LeadResponse.model_validate(lead) for lead in leads],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/from-conversation", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
async def create_lead_from_conversation(
    request: LeadFromConversation,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> LeadResponse:
    lead = await service.create_from_conversation(
        current_user,
        conversation_id=request.conversation_id,
        email=request.email,
        name=request.name,
        phone=request.phone,
        message=request.message,
        vehicle_id=request.vehicle_id,
    )
    return LeadResponse.model_validate(lead)


@router.get("/by-conversation/{conversation_id}", response_model=ConversationLeadResponse)
async def get_conversation_lead(
    conversation_id: int,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> ConversationLeadResponse:
    lead = await service.lead_for_conversation(current_user.dealer_id, conversation_id)
    return ConversationLeadResponse(
        lead=LeadResponse.model_validate(lead) if lead is not None else None
    )


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: int,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> LeadResponse:
    lead = await service.get_lead(current_user.dealer_id, lead_id)
    return LeadResponse.model_validate(lead)


@router.patch("/{lead_id}", response_model=LeadResponse)
async def update_lead(
    lead_id: int,
    request: LeadUpdate,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> LeadResponse:
    """Change status, assignee, notes, estimated value or next follow-up."""
    lead = await service.update_lead(
        current_user, lead_id, request.model_dump(exclude_unset=True)
    )
    return LeadResponse.model_validate(lead)


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead(
    lead_id: int,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(require_manager),
) -> None:
    await service.delete_lead(current_user.dealer_id, lead_id)


@router.get("/{lead_id}/activities", response_model=List[LeadActivityResponse])
async def list_activities(
    lead_id: int,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> List[LeadActivityResponse]:
    activities = await service.list_activities(current_user.dealer_id, lead_id)
    return [LeadActivityResponse.model_validate(a) for a in activities]


@router.post(
    "/{lead_id}/activities",
    response_model=LeadActivityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_activity(
    lead_id: int,
    request: LeadActivityCreate,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> LeadActivityResponse:
    activity = await service.add_activity(
        current_user, lead_id, request.type, request.content, request.metadata
    )
    return LeadActivityResponse.model_validate(activity)


@router.get("/{lead_id}/preferences", response_model=Optional[LeadPreferencesResponse])
async def get_preferences(
    lead_id: int,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> Optional[LeadPreferencesResponse]:
    prefs = await service.get_preferences(current_user.dealer_id, lead_id)
    return LeadPreferencesResponse.model_validate(prefs) if prefs is not None else None


@router.put("/{lead_id}/preferences", response_model=LeadPreferencesResponse)
async def upsert_preferences(
    lead_id: int,
    request: LeadPreferencesPayload,
    service: LeadService = Depends(get_lead_service),
    current_user: User = Depends(get_current_user),
) -> LeadPreferencesResponse:
    prefs = await service.upsert_preferences(
        current_user.dealer_id, lead_id, request.model_dump(mode="json")
    )
    return LeadPreferencesResponse.model_validate(prefs)


@router.get("/{lead_id}/match", response_model=MatchResponse)
async def match_inventory(
    lead_id: int,
    limit: int = Query(5, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MatchResponse:
    """Active vehicles of the dealer ranked against the lead's preferences."""
    matches = await InventoryMatcher(db).match_for_lead(current_user.dealer_id, lead_id, limit)
    return MatchResponse(
        vehicles=[MatchedVehicleResponse.model_validate(m) for m in matches]
    )
