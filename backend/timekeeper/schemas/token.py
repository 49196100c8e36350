import uuid
from datetime import datetime

from pydantic import BaseModel


class TokenIssued(BaseModel):
    id: uuid.UUID
    token: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TokenRead(BaseModel):
    id: uuid.UUID
    token: str
    created_at: datetime
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None

    model_config = {"from_attributes": True}
