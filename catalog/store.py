"""
catalog/store.py -- SQLAlchemy Core persistence layer for products.

Same Repository + Data Mapper shape as auth/store.py: ProductStore owns its
async engine and table, _row_to_product maps rows to the Product dataclass.

in_stock is stored as an Integer (0/1) and converted at the mapper boundary so
callers always see a bool.

Layer rule: no imports from api/, auth/, or cache/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from catalog.models import Product
from core.pagination import page_offset

_metadata = MetaData()

_products = Table(
    "products",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("price", Float, nullable=False),
    Column("category", String(100), nullable=False, index=True),
    Column("in_stock", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_MUTABLE_FIELDS = frozenset({"name", "description", "price", "category", "in_stock"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProductStore:
    """Repository for Product entities.

    Usage:
        store = ProductStore("sqlite+aiosqlite:///./accounts.db")
        await store.initialize()
        product = await store.create_product(Product(name="Lamp", price=19.5, category="home"))
    """

    def __init__(self, db_url: str) -> None:
        self.engine: AsyncEngine = create_async_engine(db_url)

    async def initialize(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    async def create_product(self, product: Product) -> Product:
        created_at = _now_iso()
        async with self.engine.begin() as conn:
            result = await conn.execute(
                _products.insert().values(
                    name=product.name,
                    description=product.description,
                    price=product.price,
                    category=product.category,
                    in_stock=1 if product.in_stock else 0,
                    created_at=created_at,
                )
            )
            product_id = result.inserted_primary_key[0]
        return Product(
            id=product_id,
            name=product.name,
            description=product.description,
            price=product.price,
            category=product.category,
            in_stock=product.in_stock,
            created_at=created_at,
        )

    async def get_by_id(self, product_id: int) -> Product | None:
        async with self.engine.connect() as conn:
            row = (await conn.execute(_products.select().where(_products.c.id == product_id))).fetchone()
        return _row_to_product(row) if row is not None else None

    async def list_products(self, page: int, limit: int, category: str = "") -> tuple[list[Product], int]:
        """Return one page of products (newest first) and the total count.

        category is an exact match; empty string means no filter.
        """
        count_q = select(func.count()).select_from(_products)
        rows_q = (
            _products.select()
            .order_by(_products.c.created_at.desc(), _products.c.id.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        if category:
            count_q = count_q.where(_products.c.category == category)
            rows_q = rows_q.where(_products.c.category == category)

        async with self.engine.connect() as conn:
            total = (await conn.execute(count_q)).scalar() or 0
            rows = (await conn.execute(rows_q)).fetchall()
        return [_row_to_product(r) for r in rows], total

    async def update_product(self, product_id: int, **fields) -> Product | None:
        """Update mutable fields and return the fresh row, or None if not found."""
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown product fields: {unknown!r}")
        if "in_stock" in fields:
            fields["in_stock"] = 1 if fields["in_stock"] else 0
        async with self.engine.begin() as conn:
            if fields:
                result = await conn.execute(
                    _products.update().where(_products.c.id == product_id).values(**fields)
                )
                if result.rowcount == 0:
                    return None
            row = (await conn.execute(_products.select().where(_products.c.id == product_id))).fetchone()
        return _row_to_product(row) if row is not None else None

    async def delete_product(self, product_id: int) -> bool:
        async with self.engine.begin() as conn:
            result = await conn.execute(_products.delete().where(_products.c.id == product_id))
        return result.rowcount > 0

    async def close(self) -> None:
        await self.engine.dispose()


def _row_to_product(row) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        description=row.description,
        price=row.price,
        category=row.category,
        in_stock=bool(row.in_stock),
        created_at=row.created_at,
    )
