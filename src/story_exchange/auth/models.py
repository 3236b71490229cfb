"""
Authentication Models

Strongly-typed identity model used throughout the API after JWT
verification.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class UserContext(BaseModel):
    """
    Authenticated user context derived from a verified JWT.

    The token is issued by the backing auth service; this object is injected
    into all protected routes.
    """

    user_id: uuid.UUID = Field(
        ...,
        description="Auth service user id (the token's `sub` claim).",
    )

    email: Optional[str] = Field(
        default=None,
        description="Email address, when the auth service includes it.",
    )

    role: str = Field(
        default="authenticated",
        description="Auth service role claim.",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
