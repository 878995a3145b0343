# tokenline/app/schemas/refresh_token.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RefreshTokenRecord(BaseModel):
    """Immutable snapshot of a ledger row, detached from the ORM session."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    jti: str
    user_id: int
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    client_ip: Optional[str] = None
    client_agent: Optional[str] = None
