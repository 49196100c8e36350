import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class ProjectWrite(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    color: str = Field(..., min_length=1, max_length=32)


class ProjectRead(BaseModel):
    id: uuid.UUID
    name: str
    color: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ProjectSummary(BaseModel):
    id: uuid.UUID
    name: str
    color: str

    model_config = {"from_attributes": True}
