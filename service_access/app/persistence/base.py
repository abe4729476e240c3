"""
Store interfaces consumed by the access engine.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from ..catalog.models import Product
from ..grants.models import AccessGrant, GrantFields


class CatalogStore(ABC):
    """Read access to products and their ordered galleries."""

    async def start(self):
        """Acquire resources."""

    async def stop(self):
        """Release resources."""

    @abstractmethod
    async def find_product_by_plan(self, plan_code: str) -> Optional[Product]:
        """Lowest-id product declaring `plan_code` in any plan slot."""

    @abstractmethod
    async def list_products(self) -> List[Product]:
        """Every product with its gallery, most recently updated first."""

    @abstractmethod
    async def get_product(self, product_id: int) -> Optional[Product]:
        """Point lookup with gallery."""

    @abstractmethod
    async def seed_products(self, products: Sequence[Product]) -> int:
        """Insert `products` only if the catalog is empty. Returns the number inserted."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the store answers."""


class GrantStore(ABC):
    """Durable access-grant records."""

    async def start(self):
        """Acquire resources."""

    async def stop(self):
        """Release resources."""

    @abstractmethod
    async def find_active_grant(self, email: str, plan_code: str) -> Optional[AccessGrant]:
        """Most recent active grant for the pair."""

    @abstractmethod
    async def insert_grant(self, fields: GrantFields) -> AccessGrant:
        """Unconditional insert. Raises ConflictError for a second active grant on a pair."""

    @abstractmethod
    async def insert_grant_if_absent(self, fields: GrantFields) -> Tuple[AccessGrant, bool]:
        """Atomically insert an active grant unless one exists for the pair.

        Returns (grant, created). When a grant already exists, that grant is
        returned unchanged with created=False.
        """

    @abstractmethod
    async def list_active_grants(self, email: str) -> List[AccessGrant]:
        """Active grants for an email, newest first."""

    @abstractmethod
    async def list_grants(self, email: str) -> List[AccessGrant]:
        """All grants for an email regardless of status, newest first."""

    @abstractmethod
    async def list_recent_grants(self, limit: int = 50) -> List[AccessGrant]:
        """The most recently created grants across all emails, newest first."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the store answers."""
