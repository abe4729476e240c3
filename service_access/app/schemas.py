"""
Request models for the Access Service HTTP surface.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class CheckAccessRequest(BaseModel):
    """Request model for a single-plan access check."""
    email: Optional[str] = Field(None, description="Customer email")
    plan_code: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("plan_code", "plano_code"),
        description="Plan code (legacy clients send plano_code)",
    )


class UserProductsRequest(BaseModel):
    """Request model for the per-user product view."""
    email: Optional[str] = Field(None, description="Customer email; empty means anonymous")


class SimulateAccessRequest(BaseModel):
    """Request model for granting a test plan without a payment."""
    email: Optional[str] = Field(None, description="Customer email")
    plan_code: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("plan_code", "plano_code"),
        description="Plan code to grant",
    )
