"""
Unit tests for the in-memory catalog and grant stores.
"""

import pytest
from datetime import timedelta

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import ConflictError
from shared.test_helpers import access_data_factory
from service_access.app.catalog.models import Product, utcnow
from service_access.app.grants.models import GrantFields, GrantStatus
from service_access.app.persistence.memory import MemoryCatalogStore, MemoryGrantStore
from service_access.app.persistence.sample_catalog import sample_products


class TestMemoryCatalogStore:
    """Test cases for MemoryCatalogStore."""

    @pytest.fixture
    def catalog_store(self):
        """Empty in-memory catalog."""
        return MemoryCatalogStore()

    @pytest.mark.asyncio
    async def test_lowest_id_wins_plan_resolution(self, catalog_store):
        """Test two products declaring one plan resolve to the lower id."""
        catalog_store.add_product(Product(**access_data_factory.product_record(name="Later", plan_1=None, plan_2="P1", id=9)))
        catalog_store.add_product(Product(**access_data_factory.product_record(name="Earlier", plan_1=None, plan_3="P1", id=4)))

        product = await catalog_store.find_product_by_plan("P1")

        assert product.id == 4
        assert product.name == "Earlier"

    @pytest.mark.asyncio
    async def test_unknown_plan(self, catalog_store):
        """Test an undeclared plan resolves to nothing."""
        catalog_store.add_product(Product(**access_data_factory.product_record()))

        assert await catalog_store.find_product_by_plan("NOPE") is None

    @pytest.mark.asyncio
    async def test_generated_ids_skip_explicit_ids(self, catalog_store):
        """Test a product added without an id never replaces one added with an explicit id."""
        catalog_store.add_product(Product(**access_data_factory.product_record(name="Explicit", id=1)))
        generated = catalog_store.add_product(Product(**access_data_factory.product_record(name="Generated", plan_1="P2")))

        assert generated.id == 2
        assert sorted(p.name for p in await catalog_store.list_products()) == ["Explicit", "Generated"]
        assert (await catalog_store.get_product(1)).name == "Explicit"

    @pytest.mark.asyncio
    async def test_gallery_is_assembled_on_read(self, catalog_store):
        """Test stored galleries go through the assembler, dropping corrupt items."""
        records = access_data_factory.media_records([2, 0, 1])
        raw = access_data_factory.raw_gallery([records[0], "{corrupt", records[1], records[2]])
        product = catalog_store.add_product(Product(**access_data_factory.product_record()), raw_gallery=raw)

        fetched = await catalog_store.get_product(product.id)

        assert [m.ordinal for m in fetched.gallery] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_list_orders_by_recency(self, catalog_store):
        """Test listing is updated_at desc, then created_at desc, then id desc."""
        now = utcnow()
        old = access_data_factory.product_record(name="Old", created_at=now, updated_at=now - timedelta(days=2))
        new = access_data_factory.product_record(name="New", created_at=now, updated_at=now)
        tie_a = access_data_factory.product_record(name="TieA", created_at=now - timedelta(days=1),
                                                   updated_at=now - timedelta(days=1))
        tie_b = access_data_factory.product_record(name="TieB", created_at=now - timedelta(days=1),
                                                   updated_at=now - timedelta(days=1))
        for record in (old, new, tie_a, tie_b):
            catalog_store.add_product(Product(**record))

        names = [p.name for p in await catalog_store.list_products()]

        assert names == ["New", "TieB", "TieA", "Old"]

    @pytest.mark.asyncio
    async def test_seed_only_when_empty(self, catalog_store):
        """Test seeding inserts the sample catalog once."""
        assert await catalog_store.seed_products(sample_products()) == 2
        assert await catalog_store.seed_products(sample_products()) == 0

        products = await catalog_store.list_products()
        assert len(products) == 2
        fabi = await catalog_store.find_product_by_plan("PPLQQLST6")
        assert [m.kind.value for m in fabi.gallery] == ["image", "image", "video"]


class TestMemoryGrantStore:
    """Test cases for MemoryGrantStore."""

    @pytest.fixture
    def grant_store(self):
        """Empty in-memory grant store."""
        return MemoryGrantStore()

    @pytest.mark.asyncio
    async def test_insert_refuses_second_active_grant(self, grant_store):
        """Test plain insert enforces one active grant per pair."""
        await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P1"))

        with pytest.raises(ConflictError) as exc_info:
            await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P1"))

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_insert_allows_revoked_duplicates(self, grant_store):
        """Test revoked rows do not count toward the constraint."""
        await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P1"))
        await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P1", status=GrantStatus.REVOKED))

        assert len(await grant_store.list_grants("a@b.com")) == 2
        assert len(await grant_store.list_active_grants("a@b.com")) == 1

    @pytest.mark.asyncio
    async def test_insert_if_absent(self, grant_store):
        """Test the conditional insert returns the existing grant on conflict."""
        first, created = await grant_store.insert_grant_if_absent(GrantFields(email="a@b.com", plan_code="P1"))
        second, created_again = await grant_store.insert_grant_if_absent(
            GrantFields(email="a@b.com", plan_code="P1", plan_name="Other")
        )

        assert created is True
        assert created_again is False
        assert second.id == first.id
        assert second.plan_name is None

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, grant_store):
        """Test grants are listed newest first and scoped to the email."""
        await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P1"))
        await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P2"))
        await grant_store.insert_grant(GrantFields(email="c@d.com", plan_code="P1"))

        grants = await grant_store.list_grants("a@b.com")

        assert [g.plan_code for g in grants] == ["P2", "P1"]

    @pytest.mark.asyncio
    async def test_recent_grants_span_emails(self, grant_store):
        """Test the recent listing covers every email, newest first, up to the limit."""
        await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P1"))
        await grant_store.insert_grant(GrantFields(email="c@d.com", plan_code="P1"))
        await grant_store.insert_grant(GrantFields(email="e@f.com", plan_code="P2"))

        grants = await grant_store.list_recent_grants(limit=2)

        assert [g.email for g in grants] == ["e@f.com", "c@d.com"]

    @pytest.mark.asyncio
    async def test_find_active_grant_ignores_revoked(self, grant_store):
        """Test a revoked grant is never found as active."""
        await grant_store.insert_grant(GrantFields(email="a@b.com", plan_code="P1", status=GrantStatus.REVOKED))

        assert await grant_store.find_active_grant("a@b.com", "P1") is None
