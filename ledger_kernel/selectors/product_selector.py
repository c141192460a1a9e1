"""
Module: ledger_kernel.selectors.product_selector
Responsibility: Read-only product lookups and the paginated product listing.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from math import ceil
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.exceptions import ProductNotFoundError
from ledger_kernel.models.product import Product
from ledger_kernel.selectors.base import BaseSelector, like_pattern


@dataclass(frozen=True, slots=True)
class ProductView:
    """Read-only projection of a product row."""

    product_id: UUID
    codigo: str
    nombre: str
    proveedor: str | None
    costo_inicial: Decimal
    acarreo: Decimal
    flete: Decimal
    costo_final: Decimal
    cantidad: int
    stock: int
    fecha_ingreso: datetime


@dataclass(frozen=True, slots=True)
class ProductPage:
    products: tuple[ProductView, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return max(1, ceil(self.total / self.limit))


def _to_view(product: Product) -> ProductView:
    return ProductView(
        product_id=product.id,
        codigo=product.codigo,
        nombre=product.nombre,
        proveedor=product.proveedor,
        costo_inicial=product.costo_inicial,
        acarreo=product.acarreo,
        flete=product.flete,
        costo_final=product.costo_final,
        cantidad=product.cantidad,
        stock=product.stock,
        fecha_ingreso=product.fecha_ingreso,
    )


class ProductSelector(BaseSelector):
    """Queries over products."""

    def get(self, product_id: UUID) -> ProductView:
        product = self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return _to_view(product)

    def find_by_code(self, codigo: str) -> ProductView | None:
        product = self.session.execute(
            select(Product).where(Product.codigo == codigo.strip())
        ).scalar_one_or_none()
        return _to_view(product) if product is not None else None

    def list_products(
        self,
        search: str | None = None,
        page: int | None = 1,
        limit: int | None = None,
    ) -> ProductPage:
        """Products matching ``search`` on name, code or supplier, newest first."""
        clauses = []
        if search:
            pattern = like_pattern(search.strip().lower())
            clauses.append(
                or_(
                    func.lower(Product.nombre).like(pattern, escape="\\"),
                    func.lower(Product.codigo).like(pattern, escape="\\"),
                    func.lower(Product.proveedor).like(pattern, escape="\\"),
                )
            )

        total = self.session.execute(
            select(func.count(Product.id)).where(*clauses)
        ).scalar_one()

        page, limit = self._page_window(page, limit)
        products = self.session.execute(
            select(Product)
            .where(*clauses)
            .order_by(Product.fecha_ingreso.desc(), Product.codigo.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        ).scalars()

        return ProductPage(
            products=tuple(_to_view(p) for p in products),
            total=total,
            page=page,
            limit=limit,
        )
