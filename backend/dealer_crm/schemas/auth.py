from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Claims of a bearer token issued by the marketplace auth service."""
    sub: int
    email: str
    dealer_id: Optional[int] = None
    exp: datetime
