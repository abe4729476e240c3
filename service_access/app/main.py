"""
Access service for the Members Access Layer.
"""

import time
from typing import Dict, Optional, Tuple

from fastapi import Request

from shared.base_service import BaseService
from shared.errors import AccessLayerException
from shared.logging import set_customer_context

from .grants.guard import IdempotencyGuard
from .ingest.webhook import WebhookIngestor, decode_event
from .persistence.base import CatalogStore, GrantStore
from .persistence.memory import MemoryCatalogStore, MemoryGrantStore
from .persistence.postgres import PostgreSQLCatalogStore, PostgreSQLDatabase, PostgreSQLGrantStore
from .persistence.sample_catalog import sample_products
from .query.service import AccessQueryService
from .schemas import CheckAccessRequest, SimulateAccessRequest, UserProductsRequest


class AccessService(BaseService):
    """Access service implementation."""

    def __init__(self, catalog_store: Optional[CatalogStore] = None,
                 grant_store: Optional[GrantStore] = None, **config_overrides):
        super().__init__("access", 8011, **config_overrides)

        self.database: Optional[PostgreSQLDatabase] = None
        if catalog_store is None or grant_store is None:
            catalog_store, grant_store = self._build_stores()
        self.catalog_store = catalog_store
        self.grant_store = grant_store

        self.guard = IdempotencyGuard(self.grant_store)
        self.ingestor = WebhookIngestor(
            self.catalog_store,
            self.guard,
            approved_status=self.config.approved_status
        )
        self.queries = AccessQueryService(
            self.catalog_store,
            self.grant_store,
            owned_category=self.config.owned_category
        )

        self._setup_access_routes()

    def _build_stores(self) -> Tuple[CatalogStore, GrantStore]:
        """Create stores for the configured backend."""
        backend = self.config.storage_backend.lower()
        if backend == "memory":
            return MemoryCatalogStore(), MemoryGrantStore()
        if backend == "postgres":
            self.database = PostgreSQLDatabase(
                self.config.postgres_dsn,
                min_size=self.config.pool_min_size,
                max_size=self.config.pool_max_size,
                timeout=self.config.store_timeout_seconds,
                connect_attempts=self.config.store_connect_attempts
            )
            return PostgreSQLCatalogStore(self.database), PostgreSQLGrantStore(self.database)
        raise ValueError(f"Unknown storage backend: {self.config.storage_backend}")

    def _setup_access_routes(self):
        """Set up access-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "access",
                "message": "Members Access Layer - Access Service",
                "version": "1.0.0",
                "capabilities": ["webhook_ingest", "access_check", "reconciliation"]
            }

        @self.app.post("/webhook/perfectpay")
        async def perfectpay_webhook(request: Request):
            """Grant access for an approved payment event."""
            body = await request.body()
            try:
                result = await self.ingestor.ingest(decode_event(body))
            except AccessLayerException as e:
                self.metrics.record_webhook_outcome("error" if e.status_code >= 500 else "rejected")
                raise

            self.metrics.record_webhook_outcome(result.outcome)
            if result.grant_id is not None:
                set_customer_context(result.email)
                self.observability.log_business_event(
                    f"webhook_{result.outcome}",
                    grant_id=result.grant_id,
                    plan_code=result.plan_code
                )
            return result.to_response()

        @self.app.post("/api/check-access")
        async def check_access(request: CheckAccessRequest):
            """Check whether an email holds an active grant for a plan."""
            set_customer_context(request.email)
            check = await self.queries.check_access(request.email, request.plan_code)
            self.metrics.record_access_check(check.has_access)
            return check.to_response()

        @self.app.post("/api/user/products")
        async def user_products(request: UserProductsRequest):
            """Full catalog plus the products this email owns."""
            set_customer_context(request.email)
            with self.metrics.time_operation("reconcile_duration_seconds"):
                result = await self.queries.reconcile(request.email)
            return result.to_response()

        @self.app.get("/api/products")
        async def list_products():
            """List the catalog with galleries."""
            products = await self.queries.list_products()
            return {
                "success": True,
                "products": [p.to_dict() for p in products],
                "total": len(products)
            }

        @self.app.get("/api/products/{product_id}")
        async def get_product(product_id: int):
            """Get a single product."""
            product = await self.queries.get_product(product_id)
            return {"success": True, "product": product.to_dict()}

        if self.config.env == "local":
            @self.app.get("/debug/access")
            async def debug_recent_access():
                """The latest grants across all emails."""
                records = await self.queries.recent_grants(limit=50)
                return {
                    "access_records": [r.to_dict() for r in records],
                    "total": len(records)
                }

            @self.app.get("/debug/access/{email}")
            async def debug_access(email: str):
                """Every grant recorded for an email, newest first."""
                records = await self.queries.grant_history(email)
                return {
                    "email": email,
                    "access_records": [r.to_dict() for r in records],
                    "total": len(records)
                }

            @self.app.post("/debug/simulate-access")
            async def debug_simulate_access(request: SimulateAccessRequest):
                """Grant a plan without a payment event."""
                decision = await self.guard.ensure_grant(
                    email=request.email,
                    plan_code=request.plan_code,
                    plan_name="Test Plan",
                    sale_amount=99.99,
                    payment_ref=f"TEST_{int(time.time() * 1000)}"
                )
                self.logger.info("Simulated grant", grant_id=decision.grant.id, created=decision.created)
                return {
                    "success": True,
                    "message": "Test access granted" if decision.created else "Access already granted",
                    "access_id": decision.grant.id,
                    "created": decision.created
                }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check access service dependencies."""
        dependencies = {}

        for name, store in (("catalog_store", self.catalog_store), ("grant_store", self.grant_store)):
            try:
                dependencies[name] = "ok" if await store.health_check() else "error"
            except Exception:
                dependencies[name] = "error"

        return dependencies

    async def start(self):
        """Start access service components."""
        if self.database is not None:
            await self.database.start()
        await self.catalog_store.start()
        await self.grant_store.start()

        if self.config.seed_sample_catalog:
            await self.catalog_store.seed_products(sample_products())

        self.logger.info("Access service started", storage_backend=self.config.storage_backend)

    async def stop(self):
        """Stop access service components."""
        await self.catalog_store.stop()
        await self.grant_store.stop()
        if self.database is not None:
            await self.database.stop()

        self.logger.info("Access service stopped")


def create_app():
    """Create access service application."""
    service = AccessService()
    return service.app


if __name__ == "__main__":
    service = AccessService()
    service.run()
