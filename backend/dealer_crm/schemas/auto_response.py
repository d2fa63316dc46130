"""Auto-response configuration and template helper schemas."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AutoResponseConfigResponse(BaseModel):
    dealer_id: int
    enabled: bool
    email_template_id: Optional[int] = None
    delay_minutes: int

    class Config:
        from_attributes = True


class AutoResponseConfigUpdate(BaseModel):
    enabled: bool = False
    email_template_id: Optional[int] = None
    delay_minutes: int = 0


class TemplateContent(BaseModel):
    content: str = Field(..., max_length=10000)


class TemplatePreviewResponse(BaseModel):
    preview: str


class TemplateValidationResponse(BaseModel):
    valid: bool
    unknown_variables: List[str]


class TemplateVariablesResponse(BaseModel):
    variables: Dict[str, str]
