"""
Access grant data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from shared.errors import ValidationError

from ..catalog.models import utcnow


class GrantStatus(str, Enum):
    """Grant lifecycle states."""
    ACTIVE = "active"
    REVOKED = "revoked"


@dataclass
class GrantFields:
    """Everything needed to write a grant; the store assigns id and timestamps."""
    email: str
    plan_code: str
    plan_name: Optional[str] = None
    product_ref: Optional[str] = None
    sale_amount: Optional[float] = None
    payment_ref: Optional[str] = None
    status: GrantStatus = GrantStatus.ACTIVE

    def __post_init__(self):
        self.email = (self.email or "").strip()
        self.plan_code = (str(self.plan_code) if self.plan_code is not None else "").strip()
        if not self.email:
            raise ValidationError("Email is required", details={"field": "email"})
        if not self.plan_code:
            raise ValidationError("Plan code is required", details={"field": "plan_code"})
        self.status = GrantStatus(self.status)
        # A grant need not resolve to a catalog entry; the plan code stands in.
        if not self.product_ref:
            self.product_ref = self.plan_code


@dataclass
class AccessGrant:
    """A stored entitlement record."""
    id: int
    email: str
    plan_code: str
    plan_name: Optional[str] = None
    product_ref: Optional[str] = None
    sale_amount: Optional[float] = None
    payment_ref: Optional[str] = None
    status: GrantStatus = GrantStatus.ACTIVE
    # Reserved. Nothing evaluates expiry; see DESIGN.md.
    expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == GrantStatus.ACTIVE

    @classmethod
    def from_fields(cls, grant_id: int, fields: GrantFields, now: Optional[datetime] = None) -> "AccessGrant":
        now = now or utcnow()
        return cls(
            id=grant_id,
            email=fields.email,
            plan_code=fields.plan_code,
            plan_name=fields.plan_name,
            product_ref=fields.product_ref,
            sale_amount=fields.sale_amount,
            payment_ref=fields.payment_ref,
            status=fields.status,
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "plan_code": self.plan_code,
            "plan_name": self.plan_name,
            "product_ref": self.product_ref,
            "sale_amount": self.sale_amount,
            "payment_ref": self.payment_ref,
            "status": self.status.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class GrantDecision:
    """Outcome of an ensure-grant call."""
    grant: AccessGrant
    created: bool
