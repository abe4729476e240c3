"""
Idempotency guard for grant creation.
"""

from typing import Optional

from shared.logging import get_logger

from ..persistence.base import GrantStore
from .models import GrantDecision, GrantFields


class IdempotencyGuard:
    """Create-or-skip for grants, keyed on (email, plan_code) among active grants.

    Repeated webhook deliveries and retried requests land here. The lookup
    is only a fast path: the create step is the store's single atomic
    conditional insert, so two concurrent deliveries of the same event
    cannot both write an active grant.
    """

    def __init__(self, grant_store: GrantStore):
        self.grant_store = grant_store
        self.logger = get_logger("access.grants.guard")

    async def ensure_grant(
        self,
        email: str,
        plan_code: str,
        plan_name: Optional[str] = None,
        product_ref: Optional[str] = None,
        sale_amount: Optional[float] = None,
        payment_ref: Optional[str] = None,
    ) -> GrantDecision:
        fields = GrantFields(
            email=email,
            plan_code=plan_code,
            plan_name=plan_name,
            product_ref=product_ref,
            sale_amount=sale_amount,
            payment_ref=payment_ref,
        )

        existing = await self.grant_store.find_active_grant(fields.email, fields.plan_code)
        if existing is not None:
            self.logger.info(
                "Active grant already exists",
                grant_id=existing.id,
                email=fields.email,
                plan_code=fields.plan_code,
            )
            return GrantDecision(grant=existing, created=False)

        grant, created = await self.grant_store.insert_grant_if_absent(fields)
        if created:
            self.logger.info(
                "Grant created",
                grant_id=grant.id,
                email=fields.email,
                plan_code=fields.plan_code,
                product_ref=fields.product_ref,
            )
        else:
            # Lost the race to a concurrent delivery of the same event.
            self.logger.info(
                "Concurrent grant detected",
                grant_id=grant.id,
                email=fields.email,
                plan_code=fields.plan_code,
            )
        return GrantDecision(grant=grant, created=created)
