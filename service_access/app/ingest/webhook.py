"""
PerfectPay-style payment webhook ingestion.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from shared.errors import MalformedPayloadError, ValidationError
from shared.logging import get_logger

from ..grants.guard import IdempotencyGuard
from ..persistence.base import CatalogStore

STATUS_FIELD = "sale_status_enum_key"


def decode_event(body: Union[bytes, str]) -> Dict[str, Any]:
    """Decode a raw webhook body into a JSON object."""
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayloadError("Request body is not valid JSON", details={"error": str(e)})
    if not isinstance(payload, dict):
        raise MalformedPayloadError(
            "Payment event must be a JSON object",
            details={"received": type(payload).__name__},
        )
    return payload


def _text(value: Any) -> Optional[str]:
    """Strip a scalar field; anything else (or blank) is treated as absent."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _nested(payload: Mapping[str, Any], section: str, key: str) -> Optional[str]:
    container = payload.get(section)
    if not isinstance(container, Mapping):
        return None
    return _text(container.get(key))


def _amount(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedPayloadError("sale_amount must be numeric", details={"sale_amount": value})
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = float(value)
        except ValueError:
            raise MalformedPayloadError("sale_amount must be numeric", details={"sale_amount": value})
    if not isinstance(value, (int, float)):
        raise MalformedPayloadError("sale_amount must be numeric", details={"sale_amount": str(value)})
    try:
        amount = float(value)
    except (OverflowError, ValueError):
        raise MalformedPayloadError("sale_amount is out of range", details={"sale_amount": str(value)[:40]})
    if not math.isfinite(amount):
        raise MalformedPayloadError("sale_amount must be numeric", details={"sale_amount": str(value)})
    return amount


@dataclass
class PaymentEvent:
    """The fields of a payment notification the engine acts on."""
    status: Optional[str]
    email: Optional[str]
    plan_code: Optional[str]
    plan_name: Optional[str]
    payment_ref: Optional[str]
    raw_amount: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PaymentEvent":
        if not isinstance(payload, Mapping):
            raise MalformedPayloadError(
                "Payment event must be a JSON object",
                details={"received": type(payload).__name__},
            )
        status = payload.get(STATUS_FIELD)
        if status is not None:
            # Present but unusable (blank, nested) still counts as "not approved".
            status = _text(status) or str(status)
        return cls(
            status=status,
            email=_nested(payload, "customer", "email"),
            plan_code=_nested(payload, "plan", "code"),
            plan_name=_nested(payload, "plan", "name"),
            payment_ref=_text(payload.get("code")),
            raw_amount=payload.get("sale_amount"),
        )


@dataclass
class WebhookResult:
    """What the webhook endpoint reports back to the payment provider."""
    outcome: str
    message: str
    grant_id: Optional[int] = None
    plan: Optional[str] = None
    email: Optional[str] = None
    plan_code: Optional[str] = None
    created: Optional[bool] = None

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {"success": True, "message": self.message}
        if self.grant_id is not None:
            response.update({
                "grant_id": self.grant_id,
                "plan": self.plan,
                "email": self.email,
                "plan_code": self.plan_code,
                "created": self.created,
            })
        return response


class WebhookIngestor:
    """Turns an approved payment event into at most one new grant."""

    def __init__(self, catalog_store: CatalogStore, guard: IdempotencyGuard,
                 approved_status: str = "approved"):
        self.catalog_store = catalog_store
        self.guard = guard
        self.approved_status = approved_status
        self.logger = get_logger("access.ingest.webhook")

    async def ingest(self, payload: Any) -> WebhookResult:
        event = PaymentEvent.from_payload(payload)
        self.logger.info(
            "Payment event received",
            status=event.status,
            email=event.email,
            plan_code=event.plan_code,
            payment_ref=event.payment_ref,
        )

        # A missing status does not short-circuit; only a different one does.
        if event.status is not None and event.status != self.approved_status:
            self.logger.info("Payment event ignored", status=event.status, payment_ref=event.payment_ref)
            return WebhookResult(outcome="ignored", message="Event status not processed")

        missing = [name for name, value in (("email", event.email), ("plan_code", event.plan_code)) if not value]
        if missing:
            raise ValidationError(
                "Email and plan code are required",
                details={"missing": missing, "email": event.email, "plan_code": event.plan_code},
            )

        sale_amount = _amount(event.raw_amount)

        product = await self.catalog_store.find_product_by_plan(event.plan_code)
        if product is None:
            self.logger.warning("No product declares plan, storing plan code as reference",
                                plan_code=event.plan_code)
        product_ref = str(product.id) if product is not None else event.plan_code

        decision = await self.guard.ensure_grant(
            email=event.email,
            plan_code=event.plan_code,
            plan_name=event.plan_name,
            product_ref=product_ref,
            sale_amount=sale_amount,
            payment_ref=event.payment_ref,
        )

        grant = decision.grant
        return WebhookResult(
            outcome="granted" if decision.created else "duplicate",
            message="Access granted" if decision.created else "Access already granted",
            grant_id=grant.id,
            plan=grant.plan_name,
            email=grant.email,
            plan_code=grant.plan_code,
            created=decision.created,
        )
