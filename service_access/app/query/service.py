"""
Access Query Service: single-plan checks and per-user reconciliation.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger

from ..catalog.matching import product_matches_plan
from ..catalog.models import DEFAULT_CATEGORY, Product
from ..grants.models import AccessGrant
from ..persistence.base import CatalogStore, GrantStore


@dataclass
class AccessCheck:
    """Answer to "may this email use this plan"."""
    has_access: bool
    message: str
    grant: Optional[AccessGrant] = None
    product_name: Optional[str] = None
    matched_slot: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "success": True,
            "hasAccess": self.has_access,
            "message": self.message,
        }
        if self.grant is not None:
            access = self.grant.to_dict()
            access["product_name"] = self.product_name
            access["matched_slot"] = self.matched_slot
            response["access"] = access
        return response


@dataclass
class ProductAccess:
    """A catalog product annotated with the caller's access to it."""
    product: Product
    has_access: bool = False
    matched_slot: Optional[str] = None
    access_plan: Optional[str] = None
    original_category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.product.to_dict()
        data["has_access"] = self.has_access
        data["matched_slot"] = self.matched_slot
        data["access_plan"] = self.access_plan
        if self.original_category is not None:
            data["original_category"] = self.original_category
        return data


@dataclass
class Reconciliation:
    """Full catalog plus the subset an email owns."""
    email: str
    all_products: List[ProductAccess] = field(default_factory=list)
    owned_products: List[ProductAccess] = field(default_factory=list)
    active_plans: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "products": [p.to_dict() for p in self.all_products],
            "userProducts": [p.to_dict() for p in self.owned_products],
            "totalProducts": len(self.all_products),
            "userAccessCount": len(self.owned_products),
            "activePlans": list(self.active_plans),
            "userEmail": self.email,
        }


@dataclass
class GrantRecord:
    """A grant joined with the name of the product its plan unlocks."""
    grant: AccessGrant
    product_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.grant.to_dict()
        data["product_name"] = self.product_name
        return data


def _required(value: Optional[str], name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{name} is required", details={"field": name})
    return value


class AccessQueryService:
    """Read-only queries over grants and the catalog.

    Ownership is computed at query time by matching plan codes, so a
    product configured after a payment is owned as soon as it declares
    the paid plan.
    """

    def __init__(self, catalog_store: CatalogStore, grant_store: GrantStore,
                 owned_category: str = DEFAULT_CATEGORY):
        self.catalog_store = catalog_store
        self.grant_store = grant_store
        self.owned_category = owned_category
        self.logger = get_logger("access.query")

    async def check_access(self, email: Optional[str], plan_code: Optional[str]) -> AccessCheck:
        email = _required(email, "email")
        plan_code = _required(plan_code, "plan_code")

        grant = await self.grant_store.find_active_grant(email, plan_code)
        if grant is None:
            self.logger.info("Access denied", email=email, plan_code=plan_code)
            return AccessCheck(has_access=False, message="Access denied - plan not purchased")

        product = await self.catalog_store.find_product_by_plan(plan_code)
        slot = product_matches_plan(product, plan_code) if product else None

        self.logger.info("Access granted", email=email, plan_code=plan_code, grant_id=grant.id)
        return AccessCheck(
            has_access=True,
            message=f"Access granted - plan: {grant.plan_name or plan_code}",
            grant=grant,
            product_name=product.name if product else None,
            matched_slot=slot,
        )

    async def reconcile(self, email: Optional[str]) -> Reconciliation:
        """Annotate every product with the email's access and collect the owned ones."""
        email = (email or "").strip()

        active_plans: List[str] = []
        if email:
            for grant in await self.grant_store.list_active_grants(email):
                if grant.plan_code not in active_plans:
                    active_plans.append(grant.plan_code)

        result = Reconciliation(email=email, active_plans=active_plans)
        for product in await self.catalog_store.list_products():
            slot = product_matches_plan(product, active_plans)
            if slot is None:
                result.all_products.append(ProductAccess(product))
                continue

            access_plan = getattr(product, slot)
            result.all_products.append(
                ProductAccess(product, has_access=True, matched_slot=slot, access_plan=access_plan)
            )
            result.owned_products.append(
                ProductAccess(
                    dataclasses.replace(product, category=self.owned_category),
                    has_access=True,
                    matched_slot=slot,
                    access_plan=access_plan,
                    original_category=product.category,
                )
            )

        self.logger.info(
            "Reconciled user products",
            email=email,
            active_plans=len(active_plans),
            total_products=len(result.all_products),
            owned_products=len(result.owned_products),
        )
        return result

    async def list_products(self) -> List[Product]:
        return await self.catalog_store.list_products()

    async def get_product(self, product_id: int) -> Product:
        product = await self.catalog_store.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    async def _with_product_names(self, grants: List[AccessGrant]) -> List[GrantRecord]:
        names: Dict[str, Optional[str]] = {}
        for plan_code in {g.plan_code for g in grants}:
            product = await self.catalog_store.find_product_by_plan(plan_code)
            names[plan_code] = product.name if product else None
        return [GrantRecord(g, product_name=names[g.plan_code]) for g in grants]

    async def grant_history(self, email: Optional[str]) -> List[GrantRecord]:
        """Every grant for an email regardless of status, newest first."""
        grants = await self.grant_store.list_grants(_required(email, "email"))
        return await self._with_product_names(grants)

    async def recent_grants(self, limit: int = 50) -> List[GrantRecord]:
        """The latest grants across all emails."""
        if limit < 1:
            raise ValidationError("limit must be positive", details={"limit": limit})
        return await self._with_product_names(await self.grant_store.list_recent_grants(limit))
