"""
In-process catalog and grant stores.

Used for local runs (ACCESS_STORAGE_BACKEND=memory) and tests. Galleries are
kept in the same concatenated form the PostgreSQL store returns, so reads go
through the gallery assembler either way.
"""

import asyncio
import dataclasses
import itertools
from typing import Dict, List, Optional, Sequence, Tuple

from shared.errors import ConflictError
from shared.logging import get_logger

from ..catalog.gallery import assemble_gallery, serialize_gallery
from ..catalog.matching import product_matches_plan
from ..catalog.models import Product, utcnow
from ..grants.models import AccessGrant, GrantFields, GrantStatus
from .base import CatalogStore, GrantStore


class MemoryCatalogStore(CatalogStore):
    """Catalog held in a dict keyed by product id."""

    def __init__(self):
        self.logger = get_logger("access.persistence.memory.catalog")
        self._products: Dict[int, Product] = {}
        self._galleries: Dict[int, str] = {}
        self._ids = itertools.count(1)

    def add_product(self, product: Product, raw_gallery: Optional[str] = None) -> Product:
        """Stand-in for the external catalog admin surface."""
        if product.id is None:
            product_id = next(self._ids)
            while product_id in self._products:
                product_id = next(self._ids)
        else:
            product_id = product.id
        stored = dataclasses.replace(product, id=product_id, gallery=[])
        self._products[product_id] = stored
        self._galleries[product_id] = raw_gallery if raw_gallery is not None else serialize_gallery(product.gallery)
        return self._with_gallery(stored)

    def _with_gallery(self, product: Product) -> Product:
        gallery = assemble_gallery(self._galleries.get(product.id), product_id=product.id)
        return dataclasses.replace(product, gallery=gallery)

    async def find_product_by_plan(self, plan_code: str) -> Optional[Product]:
        for product_id in sorted(self._products):
            product = self._products[product_id]
            if product_matches_plan(product, plan_code):
                return self._with_gallery(product)
        return None

    async def list_products(self) -> List[Product]:
        products = sorted(
            self._products.values(),
            key=lambda p: (p.updated_at, p.created_at, p.id),
            reverse=True,
        )
        return [self._with_gallery(p) for p in products]

    async def get_product(self, product_id: int) -> Optional[Product]:
        product = self._products.get(product_id)
        return self._with_gallery(product) if product else None

    async def seed_products(self, products: Sequence[Product]) -> int:
        if self._products:
            return 0
        for product in products:
            self.add_product(product)
        self.logger.info("Sample catalog seeded", count=len(products))
        return len(products)

    async def health_check(self) -> bool:
        return True


class MemoryGrantStore(GrantStore):
    """Append-only grant list guarded by an asyncio lock."""

    def __init__(self):
        self.logger = get_logger("access.persistence.memory.grants")
        self._grants: List[AccessGrant] = []
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def _active_for(self, email: str, plan_code: str) -> Optional[AccessGrant]:
        matches = [
            g for g in self._grants
            if g.email == email and g.plan_code == plan_code and g.is_active
        ]
        return max(matches, key=lambda g: (g.created_at, g.id)) if matches else None

    def _append(self, fields: GrantFields) -> AccessGrant:
        grant = AccessGrant.from_fields(next(self._ids), fields, now=utcnow())
        self._grants.append(grant)
        return grant

    async def find_active_grant(self, email: str, plan_code: str) -> Optional[AccessGrant]:
        return self._active_for(email, plan_code)

    async def insert_grant(self, fields: GrantFields) -> AccessGrant:
        async with self._lock:
            if fields.status == GrantStatus.ACTIVE and self._active_for(fields.email, fields.plan_code):
                raise ConflictError(
                    "Active grant already exists for this email and plan",
                    details={"email": fields.email, "plan_code": fields.plan_code},
                )
            return self._append(fields)

    async def insert_grant_if_absent(self, fields: GrantFields) -> Tuple[AccessGrant, bool]:
        async with self._lock:
            existing = self._active_for(fields.email, fields.plan_code)
            if existing is not None:
                return existing, False
            return self._append(fields), True

    async def list_active_grants(self, email: str) -> List[AccessGrant]:
        return [g for g in await self.list_grants(email) if g.is_active]

    async def list_grants(self, email: str) -> List[AccessGrant]:
        grants = [g for g in self._grants if g.email == email]
        return sorted(grants, key=lambda g: (g.created_at, g.id), reverse=True)

    async def list_recent_grants(self, limit: int = 50) -> List[AccessGrant]:
        return sorted(self._grants, key=lambda g: (g.created_at, g.id), reverse=True)[:limit]

    async def health_check(self) -> bool:
        return True
