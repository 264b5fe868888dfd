"""
PostgreSQL persistence layer for the Catalog Service.
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from shared.logging import get_logger
from shared.errors import ConflictError, DataLayerError, NotFoundError
from ..catalog.models import (
    CategoryResponse, ProductCreateRequest, ProductListQuery, ProductResponse,
    ProductUpdateRequest, SortField
)


_PRODUCT_SELECT = """
    SELECT p.id, p.sku, p.name, p.description, p.price, p.currency, p.stock,
           p.image_url, p.created_at, p.updated_at,
           c.id AS category_id, c.name AS category_name
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
"""

_PRODUCT_COUNT = """
    SELECT COUNT(*)
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
"""

_SORT_COLUMNS = {
    SortField.PRICE: "p.price",
    SortField.CREATED_AT: "p.created_at",
}

# Column order of partial updates; keeps generated SQL deterministic.
_UPDATABLE_COLUMNS = (
    "sku", "name", "description", "price", "currency", "stock", "image_url", "category_id"
)
_NULLABLE_COLUMNS = {"description", "image_url"}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _build_filters(query: ProductListQuery) -> Tuple[str, List[Any]]:
    """Build the WHERE clause and positional arguments of a listing query."""
    clauses: List[str] = []
    args: List[Any] = []

    def add(template: str, value: Any):
        args.append(value)
        clauses.append(template.format(n=len(args)))

    if query.q:
        add("(p.name ILIKE ${n} OR p.description ILIKE ${n})", f"%{_escape_like(query.q)}%")
    if query.category:
        add("c.name = ${n}", query.category)
    if query.min_price is not None:
        add("p.price >= ${n}", Decimal(str(query.min_price)))
    if query.max_price is not None:
        add("p.price <= ${n}", Decimal(str(query.max_price)))

    if not clauses:
        return "", args
    return " WHERE " + " AND ".join(clauses), args


def _build_order(query: ProductListQuery) -> str:
    column = _SORT_COLUMNS[query.sort]
    return f" ORDER BY {column} {query.order.value.upper()}, p.id ASC"


def _row_to_product(row) -> ProductResponse:
    """Convert database row to ProductResponse."""
    category = None
    if row["category_id"] is not None:
        category = CategoryResponse(id=row["category_id"], name=row["category_name"])

    return ProductResponse(
        id=row["id"],
        sku=row["sku"],
        name=row["name"],
        description=row["description"],
        price=float(row["price"]),
        currency=row["currency"],
        stock=row["stock"],
        image_url=row["image_url"],
        category=category,
        created_at=row["created_at"],
        updated_at=row["updated_at"]
    )


class PostgreSQLPersistence:
    """PostgreSQL persistence layer for products and categories."""

    def __init__(self, dsn: str, pool: Optional[asyncpg.Pool] = None):
        self.dsn = dsn
        self.logger = get_logger("catalog.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )
            await self._create_tables()
            self.logger.info("PostgreSQL persistence started")

        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise DataLayerError("Failed to start PostgreSQL persistence", {"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self._require_pool().acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS categories (
                    id SERIAL PRIMARY KEY,
                    name VARCHAR(100) NOT NULL UNIQUE
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id SERIAL PRIMARY KEY,
                    sku VARCHAR(64) NOT NULL UNIQUE,
                    name VARCHAR(255) NOT NULL,
                    description TEXT,
                    price NUMERIC(12, 2) NOT NULL CHECK (price >= 0),
                    currency CHAR(3) NOT NULL DEFAULT 'EUR',
                    stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
                    image_url TEXT,
                    category_id INTEGER REFERENCES categories(id) ON DELETE SET NULL,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_category ON products(category_id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_price ON products(price);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_created_at ON products(created_at);
            """)

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise DataLayerError("PostgreSQL persistence not started")
        return self.pool

    @contextmanager
    def _db_errors(self, operation: str, **context):
        """Translate driver errors into catalog errors."""
        try:
            yield
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(
                "Product with this SKU already exists",
                {"constraint": getattr(e, "constraint_name", None), **context}
            ) from e
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            self.logger.error("Database operation failed", operation=operation, error=str(e), **context)
            raise DataLayerError(f"Database operation '{operation}' failed", {"error": str(e)}) from e

    async def list_with_count(self, query: ProductListQuery) -> Tuple[List[ProductResponse], int]:
        """Return one page of products matching ``query`` and the total match count."""
        where, args = _build_filters(query)
        page_params = f" LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}"
        rows_sql = _PRODUCT_SELECT + where + _build_order(query) + page_params
        count_sql = _PRODUCT_COUNT + where

        with self._db_errors("list_products"):
            async with self._require_pool().acquire() as conn:
                async with conn.transaction(isolation="repeatable_read", readonly=True):
                    rows = await conn.fetch(rows_sql, *args, query.limit, query.offset)
                    total = await conn.fetchval(count_sql, *args)

        return [_row_to_product(row) for row in rows], int(total or 0)

    async def get_product(self, product_id: int) -> ProductResponse:
        """Load a product by id."""
        with self._db_errors("get_product", product_id=product_id):
            async with self._require_pool().acquire() as conn:
                return await self._fetch_product(conn, product_id)

    async def create_product(self, request: ProductCreateRequest) -> ProductResponse:
        """Insert a product, creating its category on first use."""
        with self._db_errors("create_product", sku=request.sku):
            async with self._require_pool().acquire() as conn:
                async with conn.transaction():
                    category_id = await self._upsert_category(conn, request.category)
                    product_id = await conn.fetchval("""
                        INSERT INTO products (
                            sku, name, description, price, currency, stock, image_url, category_id
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                        RETURNING id
                    """,
                        request.sku, request.name, request.description,
                        Decimal(str(request.price)), request.currency, request.stock,
                        request.image_url, category_id
                    )
                    product = await self._fetch_product(conn, product_id)

        self.logger.info("Product created", product_id=product.id, sku=product.sku)
        return product

    async def update_product(self, product_id: int, request: ProductUpdateRequest) -> ProductResponse:
        """Apply the fields set on ``request`` to an existing product."""
        changes: Dict[str, Any] = {
            key: value
            for key, value in request.model_dump(exclude_unset=True).items()
            if value is not None or key in _NULLABLE_COLUMNS
        }
        category = changes.pop("category", None)
        if "price" in changes:
            changes["price"] = Decimal(str(changes["price"]))

        with self._db_errors("update_product", product_id=product_id):
            async with self._require_pool().acquire() as conn:
                async with conn.transaction():
                    if category is not None:
                        changes["category_id"] = await self._upsert_category(conn, category)

                    assignments: List[str] = []
                    args: List[Any] = []
                    for column in _UPDATABLE_COLUMNS:
                        if column in changes:
                            args.append(changes[column])
                            assignments.append(f"{column} = ${len(args)}")
                    assignments.append("updated_at = NOW()")
                    args.append(product_id)

                    result = await conn.execute(
                        f"UPDATE products SET {', '.join(assignments)} WHERE id = ${len(args)}",
                        *args
                    )
                    if result == "UPDATE 0":
                        raise NotFoundError("Product", product_id)

                    product = await self._fetch_product(conn, product_id)

        self.logger.info("Product updated", product_id=product_id, fields=sorted(changes))
        return product

    async def delete_product(self, product_id: int) -> None:
        """Delete a product by id."""
        with self._db_errors("delete_product", product_id=product_id):
            async with self._require_pool().acquire() as conn:
                result = await conn.execute("DELETE FROM products WHERE id = $1", product_id)

        if result == "DELETE 0":
            raise NotFoundError("Product", product_id)

        self.logger.info("Product deleted", product_id=product_id)

    async def _upsert_category(self, conn, name: str) -> int:
        return await conn.fetchval("""
            INSERT INTO categories (name) VALUES ($1)
            ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
            RETURNING id
        """, name)

    async def _fetch_product(self, conn, product_id: int) -> ProductResponse:
        row = await conn.fetchrow(_PRODUCT_SELECT + " WHERE p.id = $1", product_id)
        if not row:
            raise NotFoundError("Product", product_id)
        return _row_to_product(row)

    async def health_check(self) -> bool:
        """Check PostgreSQL health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            return False
