"""Shared response base."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from dealer_crm.utils.time import as_utc


class ORMResponse(BaseModel):
    """Reads ORM objects; naive datetimes coming back from SQLite are UTC."""

    class Config:
        from_attributes = True

    @field_validator("*", mode="after")
    @classmethod
    def attach_utc(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return as_utc(v)
        return v
