"""
InventoryService -- product lifecycle and restocking.

Responsibility:
    Registers products (opening their first lot), receives batches
    (weighted-average and landed cost, plus a new lot), applies manual
    stock edits, and deletes empty products.  Every operation is one
    transaction that ends with the stock invariant verified.

Architecture position:
    Services -- composes the restock engine, the FIFO engine and the
    kernel LedgerWriter / SaleCommitter.

Invariants enforced:
    STOCK_EQUALS_LOT_SUM -- every write path calls
        ``LedgerWriter.verify_stock_invariant`` before commit.
    APPEND_ONLY -- deletion writes an ``eliminacion`` entry; earlier
        entries stay.

Failure modes:
    - ValidationError: bad input, before any write.
    - DuplicateProductCodeError: code already registered.
    - ProductNotFoundError: unknown product id.
    - ProductHasStockError: delete of a product that still has stock.
    - InsufficientStockError: downward adjustment beyond open lots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_engines.fifo import (
    plan_fifo_allocation,
    validate_amount,
    validate_quantity,
    validate_timestamp,
)
from ledger_engines.restock import compute_restock_costing, landed_unit_cost
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.values import LedgerOperation
from ledger_kernel.exceptions import (
    DuplicateProductCodeError,
    ProductHasStockError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.product import Product
from ledger_kernel.selectors.lot_selector import LotSelector
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_kernel.services.sale_commit import SaleCommitter
from ledger_services.base import LedgerOrchestrator

logger = get_logger("services.inventory")

CREATION_DETALLES = "Creación de producto"
RESTOCK_DETALLES = "Entrada de stock"
ADJUSTMENT_DETALLES = "Ajuste mediante edición de producto"
DELETION_DETALLES = "Eliminación de producto"


@dataclass(frozen=True)
class RestockResult:
    product_id: UUID
    entry_id: UUID
    new_unit_cost: Decimal
    new_landed_cost: Decimal
    stock_anterior: int
    stock_nuevo: int


@dataclass(frozen=True)
class AdjustmentResult:
    """Outcome of a manual stock edit; ``entry_id`` is None for a no-op."""

    product_id: UUID
    operacion: LedgerOperation | None
    entry_id: UUID | None
    stock_anterior: int
    stock_nuevo: int


def _required_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError.for_field(field, "is required", value)
    return value.strip()


class InventoryService(LedgerOrchestrator):
    """
    Product lifecycle operations.

    Usage:
        service = InventoryService(session, clock=clock)
        product_id = service.register_product(
            codigo="A-1", nombre="Tornillo", costo_inicial=Decimal("50"),
            cantidad=10, acarreo=Decimal("10"), flete=Decimal("10"),
        )
        service.restock(product_id, incoming_quantity=10,
                        incoming_unit_cost=Decimal("4"))
    """

    def __init__(self, session, clock=None, settings=None, auto_commit=True):
        super().__init__(session, clock, settings, auto_commit)
        self._writer = LedgerWriter(session, self._clock)
        self._committer = SaleCommitter(session, self._clock)
        self._lots = LotSelector(session)

    # -- register -----------------------------------------------------------

    def register_product(
        self,
        codigo: str,
        nombre: str,
        costo_inicial: Decimal,
        cantidad: int,
        proveedor: str | None = None,
        acarreo: Decimal = ZERO,
        flete: Decimal = ZERO,
        fecha_ingreso: datetime | None = None,
    ) -> UUID:
        """
        Create a product and its opening ``creacion`` lot.

        Returns:
            The new product id.
        """
        codigo = _required_text(codigo, "codigo")
        nombre = _required_text(nombre, "nombre")
        costo_inicial = validate_amount(costo_inicial, "costo_inicial")
        if costo_inicial <= ZERO:
            raise ValidationError.for_field(
                "costo_inicial", "must be positive", str(costo_inicial)
            )
        cantidad = validate_quantity(cantidad)
        acarreo = validate_amount(acarreo, "acarreo")
        flete = validate_amount(flete, "flete")
        fecha_ingreso = validate_timestamp(fecha_ingreso, "fecha_ingreso")
        if proveedor is not None:
            proveedor = proveedor.strip() or None

        def work() -> UUID:
            existing = self._session.execute(
                select(Product.id).where(Product.codigo == codigo)
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateProductCodeError(codigo)

            fecha = fecha_ingreso or self._clock.now()
            product = Product(
                codigo=codigo,
                nombre=nombre,
                proveedor=proveedor,
                costo_inicial=costo_inicial,
                acarreo=acarreo,
                flete=flete,
                costo_final=landed_unit_cost(costo_inicial, cantidad, acarreo, flete),
                cantidad=cantidad,
                stock=cantidad,
                fecha_ingreso=fecha,
            )
            self._session.add(product)
            self._session.flush()

            self._writer.append(
                product,
                LedgerOperation.CREACION,
                cantidad=cantidad,
                stock_anterior=0,
                stock_nuevo=cantidad,
                detalles=CREATION_DETALLES,
                costo_final=product.costo_final,
                stock_lote=cantidad,
                fecha=fecha,
            )
            self._writer.verify_stock_invariant(product)
            return product.id

        return self._run_in_transaction(
            "product_registration",
            work,
            codigo=codigo,
            cantidad=cantidad,
        )

    # -- restock ------------------------------------------------------------

    def restock(
        self,
        product_id: UUID,
        incoming_quantity: int,
        incoming_unit_cost: Decimal,
        acarreo: Decimal = ZERO,
        flete: Decimal = ZERO,
        timestamp: datetime | None = None,
        detalles: str | None = None,
    ) -> RestockResult:
        """
        Receive a batch: recompute costs and open a new ``entrada`` lot.

        ``costo_inicial`` becomes the weighted average over all units ever
        received; ``costo_final`` becomes the landed cost of this batch,
        which is also the new lot's cost.
        """
        timestamp = validate_timestamp(timestamp, "timestamp")

        def work() -> RestockResult:
            product = self._writer.lock_product(product_id)
            costing = compute_restock_costing(
                current_unit_cost=product.costo_inicial,
                current_quantity=product.cantidad,
                incoming_quantity=incoming_quantity,
                incoming_unit_cost=incoming_unit_cost,
                acarreo=acarreo,
                flete=flete,
            )

            stock_anterior = product.stock
            stock_nuevo = stock_anterior + incoming_quantity

            product.costo_inicial = costing.new_unit_cost
            product.costo_final = costing.new_landed_cost
            product.acarreo = validate_amount(acarreo, "acarreo")
            product.flete = validate_amount(flete, "flete")
            product.cantidad = costing.new_cantidad
            product.stock = stock_nuevo

            entry = self._writer.append(
                product,
                LedgerOperation.ENTRADA,
                cantidad=incoming_quantity,
                stock_anterior=stock_anterior,
                stock_nuevo=stock_nuevo,
                detalles=detalles or RESTOCK_DETALLES,
                costo_final=costing.new_landed_cost,
                stock_lote=incoming_quantity,
                fecha=timestamp,
            )
            self._writer.verify_stock_invariant(product)

            return RestockResult(
                product_id=product.id,
                entry_id=entry.id,
                new_unit_cost=costing.new_unit_cost,
                new_landed_cost=costing.new_landed_cost,
                stock_anterior=stock_anterior,
                stock_nuevo=stock_nuevo,
            )

        return self._run_in_transaction(
            "restock",
            work,
            context={"product_id": product_id},
            incoming_quantity=incoming_quantity,
            incoming_unit_cost=incoming_unit_cost,
        )

    # -- manual edits -------------------------------------------------------

    def adjust_stock(
        self,
        product_id: UUID,
        new_stock: int,
        detalles: str | None = None,
    ) -> AdjustmentResult:
        """
        Set a product's stock by hand.

        A decrease consumes lots FIFO under an ``ajuste`` entry.  An
        increase opens an ``entrada`` lot at the current ``costo_final``.
        """
        if isinstance(new_stock, bool) or not isinstance(new_stock, int):
            raise ValidationError.for_field("stock", "must be an integer", new_stock)
        if new_stock < 0:
            raise ValidationError.for_field("stock", "must not be negative", new_stock)

        def work() -> AdjustmentResult:
            product = self._writer.lock_product(product_id)
            stock_anterior = product.stock
            diff = new_stock - stock_anterior

            if diff == 0:
                return AdjustmentResult(
                    product_id=product.id,
                    operacion=None,
                    entry_id=None,
                    stock_anterior=stock_anterior,
                    stock_nuevo=stock_anterior,
                )

            if diff < 0:
                plan = plan_fifo_allocation(
                    product_id=product.id,
                    lots=self._lots.list_lots(product.id),
                    requested_quantity=-diff,
                    unit_price=ZERO,
                )
                committed = self._committer.commit_consumption(
                    plan,
                    operacion=LedgerOperation.AJUSTE,
                    detalles=detalles or ADJUSTMENT_DETALLES,
                )
                return AdjustmentResult(
                    product_id=product.id,
                    operacion=LedgerOperation.AJUSTE,
                    entry_id=committed.entry_id,
                    stock_anterior=committed.stock_anterior,
                    stock_nuevo=committed.stock_nuevo,
                )

            product.cantidad += diff
            product.stock = new_stock
            entry = self._writer.append(
                product,
                LedgerOperation.ENTRADA,
                cantidad=diff,
                stock_anterior=stock_anterior,
                stock_nuevo=new_stock,
                detalles=detalles or ADJUSTMENT_DETALLES,
                costo_final=product.costo_final,
                stock_lote=diff,
            )
            self._writer.verify_stock_invariant(product)
            return AdjustmentResult(
                product_id=product.id,
                operacion=LedgerOperation.ENTRADA,
                entry_id=entry.id,
                stock_anterior=stock_anterior,
                stock_nuevo=new_stock,
            )

        return self._run_in_transaction(
            "stock_adjustment",
            work,
            context={"product_id": product_id},
            new_stock=new_stock,
        )

    def update_product_details(
        self,
        product_id: UUID,
        nombre: str | None = None,
        proveedor: str | None = None,
    ) -> None:
        """Change descriptive fields.  Writes no ledger entry."""
        if nombre is not None:
            nombre = _required_text(nombre, "nombre")

        def work() -> None:
            product = self._writer.lock_product(product_id)
            if nombre is not None:
                product.nombre = nombre
            if proveedor is not None:
                product.proveedor = proveedor.strip() or None
            self._session.flush()

        self._run_in_transaction(
            "product_update",
            work,
            context={"product_id": product_id},
        )

    def delete_product(self, product_id: UUID) -> UUID:
        """
        Delete a product with no stock on hand.

        Returns:
            The id of the ``eliminacion`` entry left in the ledger.
        """

        def work() -> UUID:
            product = self._writer.lock_product(product_id)
            if product.stock != 0:
                raise ProductHasStockError(str(product.id), product.stock)

            entry = self._writer.append(
                product,
                LedgerOperation.ELIMINACION,
                cantidad=0,
                stock_anterior=0,
                stock_nuevo=0,
                detalles=DELETION_DETALLES,
            )
            self._session.delete(product)
            self._session.flush()
            return entry.id

        return self._run_in_transaction(
            "product_deletion",
            work,
            context={"product_id": product_id},
        )
