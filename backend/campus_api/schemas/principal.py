"""
Campus API — Principal Schema
==============================

What:  The authenticated actor of one request.
Who:   Produced by a SessionProvider, attached to the RequestContext by the
       auth gate, read by business handlers.
When:  Resolved once per request, discarded with it. The pipeline never
       persists a Principal.
"""

import uuid
from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "USER"
    INSTRUCTOR = "INSTRUCTOR"
    ADMIN = "ADMIN"


class Principal(BaseModel):
    id: uuid.UUID = Field(description="User identifier")
    name: str = Field(description="Display name")
    email: str = Field(description="Account email")
    role: Role = Field(default=Role.USER)

    model_config = {"frozen": True, "from_attributes": True}
