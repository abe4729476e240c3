"""
PostgreSQL persistence layer for the Access Service.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, List, Optional, Sequence, Tuple

import asyncpg

from shared.errors import ConflictError, StoreError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..catalog.gallery import assemble_gallery
from ..catalog.models import Product
from ..grants.models import AccessGrant, GrantFields, GrantStatus
from .base import CatalogStore, GrantStore

# Failures that mean "the store is unavailable right now", as opposed to a bug in a query.
TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    OSError,
    asyncpg.InterfaceError,
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
    asyncpg.QueryCanceledError,
    asyncpg.SerializationError,
    asyncpg.DeadlockDetectedError,
)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS products (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL CHECK (length(trim(name)) > 0),
        description TEXT,
        banner_url TEXT,
        main_video TEXT,
        access_url TEXT,
        buy_url TEXT,
        price DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (price >= 0),
        category TEXT NOT NULL DEFAULT 'meus_produtos',
        plan_1 TEXT,
        plan_2 TEXT,
        plan_3 TEXT,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS product_media (
        id BIGSERIAL PRIMARY KEY,
        product_id BIGINT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
        type TEXT NOT NULL CHECK (type IN ('image', 'video')),
        url TEXT NOT NULL,
        order_index INTEGER NOT NULL DEFAULT 0 CHECK (order_index >= 0),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS access_grants (
        id BIGSERIAL PRIMARY KEY,
        email TEXT NOT NULL,
        plan_code TEXT NOT NULL,
        plan_name TEXT,
        product_ref TEXT,
        sale_amount DOUBLE PRECISION,
        payment_ref TEXT,
        status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'revoked')),
        expires_at TIMESTAMP WITH TIME ZONE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_products_plan_1 ON products(plan_1);",
    "CREATE INDEX IF NOT EXISTS idx_products_plan_2 ON products(plan_2);",
    "CREATE INDEX IF NOT EXISTS idx_products_plan_3 ON products(plan_3);",
    "CREATE INDEX IF NOT EXISTS idx_product_media_product ON product_media(product_id, order_index);",
    "CREATE INDEX IF NOT EXISTS idx_access_grants_email ON access_grants(email, status);",
    # At most one active grant per pair; the conditional insert infers this index.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_access_grants_active_pair
        ON access_grants(email, plan_code) WHERE status = 'active';
    """,
]

# Media rows serialized per item and joined with ",", decoded by the gallery assembler.
PRODUCT_SELECT = """
    SELECT p.*, g.gallery_raw
    FROM products p
    LEFT JOIN LATERAL (
        SELECT string_agg(
                   json_build_object('type', pm.type, 'url', pm.url, 'order_index', pm.order_index)::text,
                   ',' ORDER BY pm.order_index, pm.id
               ) AS gallery_raw
        FROM product_media pm
        WHERE pm.product_id = p.id
    ) g ON TRUE
"""

GRANT_COLUMNS = """
    id, email, plan_code, plan_name, product_ref, sale_amount, payment_ref,
    status, expires_at, created_at, updated_at
"""


class PostgreSQLDatabase:
    """Owns the asyncpg pool shared by the catalog and grant stores."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10,
                 timeout: float = 5.0, connect_attempts: int = 3):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.connect_attempts = connect_attempts
        self.logger = get_logger("access.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Open the pool (with backoff) and create tables."""

        @retry_on_exception(TRANSIENT_ERRORS, RetryConfig(max_attempts=self.connect_attempts))
        async def connect():
            return await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.timeout
            )

        try:
            self.pool = await connect()
        except RetryError as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e.last_exception))
            raise StoreError("postgres", "could not connect", details={"error": str(e.last_exception)})

        async with self.connection() as conn:
            for statement in SCHEMA:
                await conn.execute(statement, timeout=self.timeout)

        self.logger.info("PostgreSQL persistence started")

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    @asynccontextmanager
    async def connection(self):
        """Acquire a pooled connection; transient driver failures become StoreError."""
        if self.pool is None:
            raise StoreError("postgres", "pool not started")
        try:
            async with self.pool.acquire(timeout=self.timeout) as conn:
                yield conn
        except TRANSIENT_ERRORS as e:
            self.logger.error("PostgreSQL call failed", error=str(e) or type(e).__name__)
            raise StoreError("postgres", "timed out or unavailable", details={"error": type(e).__name__})

    async def fetch(self, query: str, *args) -> List[Any]:
        async with self.connection() as conn:
            return await conn.fetch(query, *args, timeout=self.timeout)

    async def fetchrow(self, query: str, *args) -> Optional[Any]:
        async with self.connection() as conn:
            return await conn.fetchrow(query, *args, timeout=self.timeout)

    async def health_check(self) -> bool:
        try:
            async with self.connection() as conn:
                await conn.fetchval("SELECT 1", timeout=self.timeout)
            return True
        except (StoreError, asyncpg.PostgresError):
            return False


def _row_to_product(row) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        banner_url=row["banner_url"],
        main_video=row["main_video"],
        access_url=row["access_url"],
        buy_url=row["buy_url"],
        price=row["price"],
        category=row["category"],
        plan_1=row["plan_1"],
        plan_2=row["plan_2"],
        plan_3=row["plan_3"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        gallery=assemble_gallery(row["gallery_raw"], product_id=row["id"]),
    )


def _row_to_grant(row) -> AccessGrant:
    return AccessGrant(
        id=row["id"],
        email=row["email"],
        plan_code=row["plan_code"],
        plan_name=row["plan_name"],
        product_ref=row["product_ref"],
        sale_amount=row["sale_amount"],
        payment_ref=row["payment_ref"],
        status=GrantStatus(row["status"]),
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgreSQLCatalogStore(CatalogStore):
    """Catalog reads over the products and product_media tables."""

    def __init__(self, database: PostgreSQLDatabase):
        self.db = database
        self.logger = get_logger("access.persistence.postgres.catalog")

    async def find_product_by_plan(self, plan_code: str) -> Optional[Product]:
        row = await self.db.fetchrow(
            PRODUCT_SELECT + """
            WHERE p.plan_1 = $1 OR p.plan_2 = $1 OR p.plan_3 = $1
            ORDER BY p.id ASC
            LIMIT 1
            """,
            plan_code,
        )
        return _row_to_product(row) if row else None

    async def list_products(self) -> List[Product]:
        rows = await self.db.fetch(
            PRODUCT_SELECT + " ORDER BY p.updated_at DESC, p.created_at DESC, p.id DESC"
        )
        return [_row_to_product(row) for row in rows]

    async def get_product(self, product_id: int) -> Optional[Product]:
        row = await self.db.fetchrow(PRODUCT_SELECT + " WHERE p.id = $1", product_id)
        return _row_to_product(row) if row else None

    async def seed_products(self, products: Sequence[Product]) -> int:
        async with self.db.connection() as conn:
            async with conn.transaction():
                # Serialize concurrent seeders; the second one sees a non-empty table.
                await conn.execute("LOCK TABLE products IN SHARE ROW EXCLUSIVE MODE", timeout=self.db.timeout)
                count = await conn.fetchval("SELECT COUNT(*) FROM products", timeout=self.db.timeout)
                if count:
                    self.logger.info("Catalog already populated", products=count)
                    return 0

                for product in products:
                    product_id = await conn.fetchval(
                        """
                        INSERT INTO products (
                            name, description, banner_url, main_video, access_url, buy_url,
                            price, category, plan_1, plan_2, plan_3
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                        RETURNING id
                        """,
                        product.name, product.description, product.banner_url, product.main_video,
                        product.access_url, product.buy_url, product.price, product.category,
                        product.plan_1, product.plan_2, product.plan_3,
                        timeout=self.db.timeout,
                    )
                    if product.gallery:
                        await conn.executemany(
                            """
                            INSERT INTO product_media (product_id, type, url, order_index)
                            VALUES ($1, $2, $3, $4)
                            """,
                            [(product_id, m.kind.value, m.url, m.ordinal) for m in product.gallery],
                            timeout=self.db.timeout,
                        )

        self.logger.info("Sample catalog seeded", count=len(products))
        return len(products)

    async def health_check(self) -> bool:
        return await self.db.health_check()


class PostgreSQLGrantStore(GrantStore):
    """Grant records in the access_grants table."""

    INSERT_ATTEMPTS = 3

    def __init__(self, database: PostgreSQLDatabase):
        self.db = database
        self.logger = get_logger("access.persistence.postgres.grants")

    async def find_active_grant(self, email: str, plan_code: str) -> Optional[AccessGrant]:
        row = await self.db.fetchrow(
            f"""
            SELECT {GRANT_COLUMNS} FROM access_grants
            WHERE email = $1 AND plan_code = $2 AND status = 'active'
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            email, plan_code,
        )
        return _row_to_grant(row) if row else None

    async def insert_grant(self, fields: GrantFields) -> AccessGrant:
        try:
            row = await self.db.fetchrow(
                f"""
                INSERT INTO access_grants (
                    email, plan_code, plan_name, product_ref, sale_amount, payment_ref, status
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING {GRANT_COLUMNS}
                """,
                fields.email, fields.plan_code, fields.plan_name, fields.product_ref,
                fields.sale_amount, fields.payment_ref, fields.status.value,
            )
        except asyncpg.UniqueViolationError:
            raise ConflictError(
                "Active grant already exists for this email and plan",
                details={"email": fields.email, "plan_code": fields.plan_code},
            )
        return _row_to_grant(row)

    async def insert_grant_if_absent(self, fields: GrantFields) -> Tuple[AccessGrant, bool]:
        for attempt in range(1, self.INSERT_ATTEMPTS + 1):
            async with self.db.connection() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        INSERT INTO access_grants (
                            email, plan_code, plan_name, product_ref, sale_amount, payment_ref, status
                        ) VALUES ($1, $2, $3, $4, $5, $6, 'active')
                        ON CONFLICT (email, plan_code) WHERE status = 'active' DO NOTHING
                        RETURNING {GRANT_COLUMNS}
                        """,
                        fields.email, fields.plan_code, fields.plan_name, fields.product_ref,
                        fields.sale_amount, fields.payment_ref,
                        timeout=self.db.timeout,
                    )
                    if row is not None:
                        return _row_to_grant(row), True

                    # ON CONFLICT waited for the competing writer to commit, so its row is visible now.
                    row = await conn.fetchrow(
                        f"""
                        SELECT {GRANT_COLUMNS} FROM access_grants
                        WHERE email = $1 AND plan_code = $2 AND status = 'active'
                        ORDER BY created_at DESC, id DESC
                        LIMIT 1
                        """,
                        fields.email, fields.plan_code,
                        timeout=self.db.timeout,
                    )
                    if row is not None:
                        return _row_to_grant(row), False

            # The conflicting grant was revoked between our two statements.
            self.logger.warning(
                "Conflicting grant vanished, retrying insert",
                attempt=attempt,
                email=fields.email,
                plan_code=fields.plan_code,
            )

        raise StoreError("postgres", "could not settle grant insert", details={"plan_code": fields.plan_code})

    async def list_active_grants(self, email: str) -> List[AccessGrant]:
        rows = await self.db.fetch(
            f"""
            SELECT {GRANT_COLUMNS} FROM access_grants
            WHERE email = $1 AND status = 'active'
            ORDER BY created_at DESC, id DESC
            """,
            email,
        )
        return [_row_to_grant(row) for row in rows]

    async def list_grants(self, email: str) -> List[AccessGrant]:
        rows = await self.db.fetch(
            f"""
            SELECT {GRANT_COLUMNS} FROM access_grants
            WHERE email = $1
            ORDER BY created_at DESC, id DESC
            """,
            email,
        )
        return [_row_to_grant(row) for row in rows]

    async def list_recent_grants(self, limit: int = 50) -> List[AccessGrant]:
        rows = await self.db.fetch(
            f"""
            SELECT {GRANT_COLUMNS} FROM access_grants
            ORDER BY created_at DESC, id DESC
            LIMIT $1
            """,
            limit,
        )
        return [_row_to_grant(row) for row in rows]

    async def health_check(self) -> bool:
        return await self.db.health_check()
