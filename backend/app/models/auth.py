"""Authentication models."""

from pydantic import BaseModel, Field


class AuthenticatedUser(BaseModel):
    """User extracted from a validated Supabase access token.

    Case roles are not part of the token; they are resolved per case from
    ``case_users`` by the API dependencies.
    """

    id: str = Field(..., description="User ID (UUID from JWT 'sub' claim)")
    email: str | None = Field(None, description="User email address")
    role: str = Field("authenticated", description="Supabase auth role")
    session_id: str | None = Field(None, description="Session UUID for audit")
