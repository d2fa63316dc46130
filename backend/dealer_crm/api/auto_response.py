"""Auto-response configuration and template helpers."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.api.deps import get_config_cache
from dealer_crm.database import get_db
from dealer_crm.models.user import User
from dealer_crm.schemas.auto_response import (
    AutoResponseConfigResponse,
    AutoResponseConfigUpdate,
    TemplateContent,
    TemplatePreviewResponse,
    TemplateValidationResponse,
    TemplateVariablesResponse,
)
from dealer_crm.services.auto_response import AutoResponseConfigService
from dealer_crm.services.config_cache import ConfigCache
from dealer_crm.services.templates import (
    TEMPLATE_VARIABLES,
    template_preview,
    validate_template,
)
from dealer_crm.utils.security import get_current_user, require_manager

router = APIRouter(prefix="/auto-response", tags=["Auto-response"])


@router.get("/config", response_model=AutoResponseConfigResponse)
async def get_config(
    db: AsyncSession = Depends(get_db),
    cache: ConfigCache = Depends(get_config_cache),
    current_user: User = Depends(get_current_user),
) -> AutoResponseConfigResponse:
    config = await AutoResponseConfigService(db, cache).get_config(current_user.dealer_id)
    return AutoResponseConfigResponse.model_validate(config)


@router.put("/config", response_model=AutoResponseConfigResponse)
async def update_config(
    request: AutoResponseConfigUpdate,
    db: AsyncSession = Depends(get_db),
    cache: ConfigCache = Depends(get_config_cache),
    current_user: User = Depends(require_manager),
) -> AutoResponseConfigResponse:
    config = await AutoResponseConfigService(db, cache).update_config(
        current_user.dealer_id,
        enabled=request.enabled,
        email_template_id=request.email_template_id,
        delay_minutes=request.delay_minutes,
    )
    return AutoResponseConfigResponse.model_validate(config)


@router.get("/variables", response_model=TemplateVariablesResponse)
async def list_variables(
    current_user: User = Depends(get_current_user),
) -> TemplateVariablesResponse:
    return TemplateVariablesResponse(variables=TEMPLATE_VARIABLES)


@router.post("/preview", response_model=TemplatePreviewResponse)
async def preview_template(
    request: TemplateContent,
    current_user: User = Depends(get_current_user),
) -> TemplatePreviewResponse:
    return TemplatePreviewResponse(preview=template_preview(request.content))


@router.post("/validate", response_model=TemplateValidationResponse)
async def check_template(
    request: TemplateContent,
    current_user: User = Depends(get_current_user),
) -> TemplateValidationResponse:
    return TemplateValidationResponse(**validate_template(request.content))
