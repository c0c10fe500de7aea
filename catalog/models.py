"""
catalog/models.py -- Domain dataclass for the product catalog.

Layer rule: no imports from api/, auth/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Product:
    name: str
    price: float
    category: str
    description: str | None = None
    in_stock: bool = True
    id: int | None = None
    created_at: str | None = None
