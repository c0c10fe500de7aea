"""
api/routes/v1/products.py -- Product catalog routes.

Routes:
  GET    /products          -- any authenticated user; page, limit, category
  GET    /products/{id}     -- any authenticated user
  POST   /products          -- admin only
  PUT    /products/{id}     -- admin only
  DELETE /products/{id}     -- admin only

Same cache-aside policy as the user routes: product:<id> and
products:<page>:<limit>:<category> keys, write-then-invalidate on every
mutation.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    MessageResponse,
    Pagination,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from auth.dependencies import get_current_identity, require_admin
from cache.store import PRODUCTS, EntityCache
from catalog.models import Product
from catalog.store import ProductStore
from core.errors import NotFoundError, ValidationError
from core.pagination import DEFAULT_LIMIT, MAX_LIMIT

# Reads need any valid access token; writes add require_admin per route.
router = APIRouter(dependencies=[Depends(get_current_identity)])

# Columns that may not be cleared with an explicit null. description may.
_NOT_NULL = frozenset({"name", "price", "category", "in_stock"})


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    category: str = Query("", max_length=100),
) -> dict:
    product_store: ProductStore = request.app.state.product_store
    cache: EntityCache = request.app.state.cache

    async def load() -> dict:
        products, total = await product_store.list_products(page, limit, category)
        return ProductListResponse(
            data=[ProductResponse.from_product(p) for p in products],
            pagination=Pagination.build(total, limit, page),
        ).model_dump(mode="json", by_alias=True)

    return await cache.read_through(PRODUCTS.listing(page, limit, category), load)


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(request: Request, product_id: int) -> dict:
    product_store: ProductStore = request.app.state.product_store
    cache: EntityCache = request.app.state.cache

    async def load() -> dict | None:
        product = await product_store.get_by_id(product_id)
        if product is None:
            return None
        return ProductResponse.from_product(product).model_dump(mode="json", by_alias=True)

    body = await cache.read_through(PRODUCTS.item(product_id), load)
    if body is None:
        raise NotFoundError("Product not found.")
    return body


@router.post("/products", response_model=ProductResponse, status_code=201, dependencies=[Depends(require_admin)])
async def create_product(request: Request, body: ProductCreate) -> ProductResponse:
    product_store: ProductStore = request.app.state.product_store
    cache: EntityCache = request.app.state.cache

    created = await product_store.create_product(
        Product(
            name=body.name,
            description=body.description,
            price=body.price,
            category=body.category,
            in_stock=body.in_stock,
        )
    )
    await cache.invalidate_entity(PRODUCTS, created.id)
    return ProductResponse.from_product(created)


@router.put("/products/{product_id}", response_model=ProductResponse, dependencies=[Depends(require_admin)])
async def update_product(request: Request, product_id: int, body: ProductUpdate) -> ProductResponse:
    product_store: ProductStore = request.app.state.product_store
    cache: EntityCache = request.app.state.cache

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No fields to update.", code="no_changes")
    nulled = sorted(field for field, value in updates.items() if value is None and field in _NOT_NULL)
    if nulled:
        raise ValidationError("Field cannot be null.", detail=", ".join(nulled))

    updated = await product_store.update_product(product_id, **updates)
    if updated is None:
        raise NotFoundError("Product not found.")

    await cache.invalidate_entity(PRODUCTS, product_id)
    return ProductResponse.from_product(updated)


@router.delete("/products/{product_id}", response_model=MessageResponse, dependencies=[Depends(require_admin)])
async def delete_product(request: Request, product_id: int) -> MessageResponse:
    product_store: ProductStore = request.app.state.product_store
    cache: EntityCache = request.app.state.cache

    if not await product_store.delete_product(product_id):
        raise NotFoundError("Product not found.")

    await cache.invalidate_entity(PRODUCTS, product_id)
    return MessageResponse(message="Product deleted successfully")
