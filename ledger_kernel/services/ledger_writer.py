"""
LedgerWriter -- the only code path that writes lot ledger rows.

Responsibility:
    Appends movement entries (with a monotonic ``seq``), records per-lot
    consumptions, applies guarded lot decrements and credits, and verifies
    the stock invariant before the caller commits.

Architecture position:
    Kernel > Services -- imperative shell.  Used by SaleCommitter and by
    the orchestrating services in ``ledger_services``.

Invariants enforced:
    STOCK_EQUALS_LOT_SUM -- verify_stock_invariant() compares the product
        counter with the lot sum inside the open transaction.
    LOT_BOUNDS -- decrement_lot()/credit_lot() are conditional UPDATEs that
        only match while the result stays within [0, cantidad].
    SEQUENCE_MONOTONICITY -- every entry takes its seq from SequenceService.

Failure modes:
    - ConcurrentModificationError: a guarded UPDATE matched no row because
      another transaction moved the lot first.
    - InvariantViolationError: counter and lot sum disagree.
    - ProductNotFoundError: lock_product() on an unknown id.

Audit relevance:
    Every entry append is logged with its seq, operation and quantities.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.allocation import LotAllocation
from ledger_kernel.domain.values import LOT_OPERATIONS, LedgerOperation
from ledger_kernel.exceptions import (
    ConcurrentModificationError,
    InvariantViolationError,
    ProductNotFoundError,
)
from ledger_kernel.invariants import LedgerInvariant
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger_entry import LotConsumption, LotLedgerEntry
from ledger_kernel.models.product import Product
from ledger_kernel.selectors.lot_selector import LotSelector, lot_filter
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_writer")


class LedgerWriter(BaseService):
    """
    Flush-only writer for products' ledger rows.

    Contract:
        All methods flush; none commit.  The caller's transaction either
        keeps every row written here or none of them.
    """

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._sequences = SequenceService(session)
        self._lots = LotSelector(session)

    # -- product ----------------------------------------------------------

    def lock_product(self, product_id: UUID) -> Product:
        """
        Load the product row under ``SELECT ... FOR UPDATE``.

        The row lock serializes concurrent commits for the same product on
        PostgreSQL; SQLite serializes writers per database.  The row is
        refreshed from the database even if already in the session.
        """
        product = self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    # -- entries ----------------------------------------------------------

    def append(
        self,
        product: Product,
        operacion: LedgerOperation,
        cantidad: int,
        stock_anterior: int,
        stock_nuevo: int,
        detalles: str | None = None,
        costo_final: Decimal | None = None,
        stock_lote: int | None = None,
        sale_id: UUID | None = None,
        fecha: datetime | None = None,
    ) -> LotLedgerEntry:
        """Append one ledger entry stamped with the next seq."""
        if stock_lote is not None and operacion not in LOT_OPERATIONS:
            raise ValueError(f"{operacion.value} entries cannot open a lot")
        if stock_lote is not None and costo_final is None:
            raise ValueError("A lot entry needs costo_final")

        entry = LotLedgerEntry(
            seq=self._sequences.next_value(),
            product_id=product.id,
            nombre_producto=product.nombre,
            codigo_producto=product.codigo,
            operacion=operacion.value,
            cantidad=cantidad,
            stock_anterior=stock_anterior,
            stock_nuevo=stock_nuevo,
            costo_final=round_money(costo_final) if costo_final is not None else None,
            stock_lote=stock_lote,
            fecha=fecha or self.clock.now(),
            detalles=detalles,
            sale_id=sale_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "entry_id": str(entry.id),
                "seq": entry.seq,
                "product_id": str(product.id),
                "operacion": operacion.value,
                "cantidad": cantidad,
                "stock_anterior": stock_anterior,
                "stock_nuevo": stock_nuevo,
                "stock_lote": stock_lote,
            },
        )
        return entry

    def record_consumptions(
        self,
        entry: LotLedgerEntry,
        allocations: Iterable[LotAllocation],
    ) -> list[LotConsumption]:
        rows = [
            LotConsumption(
                entry_id=entry.id,
                lot_id=allocation.lot_id,
                position=position,
                cantidad=allocation.quantity,
                costo_unitario=round_money(allocation.unit_cost),
            )
            for position, allocation in enumerate(allocations)
        ]
        self.session.add_all(rows)
        self.session.flush()
        return rows

    # -- lots -------------------------------------------------------------

    def decrement_lot(self, lot_id: UUID, quantity: int) -> None:
        """
        Take ``quantity`` units from a lot if it still holds them.

        Raises:
            ConcurrentModificationError: the lot no longer has enough units.
        """
        result = self.session.execute(
            update(LotLedgerEntry)
            .where(
                LotLedgerEntry.id == lot_id,
                LotLedgerEntry.stock_lote >= quantity,
                *lot_filter(),
            )
            .values(stock_lote=LotLedgerEntry.stock_lote - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "lot_decrement_conflict",
                extra={"lot_id": str(lot_id), "quantity": quantity},
            )
            raise ConcurrentModificationError(
                "Lot", str(lot_id), f"fewer than {quantity} units remain"
            )

    def credit_lot(self, lot_id: UUID, quantity: int) -> None:
        """
        Return ``quantity`` units to a lot without exceeding its cantidad.

        Raises:
            ConcurrentModificationError: the lot cannot take the units.
        """
        result = self.session.execute(
            update(LotLedgerEntry)
            .where(
                LotLedgerEntry.id == lot_id,
                LotLedgerEntry.stock_lote + quantity <= LotLedgerEntry.cantidad,
                *lot_filter(),
            )
            .values(stock_lote=LotLedgerEntry.stock_lote + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "lot_credit_conflict",
                extra={"lot_id": str(lot_id), "quantity": quantity},
            )
            raise ConcurrentModificationError(
                "Lot", str(lot_id), f"cannot take back {quantity} units"
            )

    # -- invariant --------------------------------------------------------

    def verify_stock_invariant(self, product: Product) -> int:
        """
        Check ``product.stock == sum(stock_lote)`` inside the transaction.

        Returns:
            The verified stock.

        Raises:
            InvariantViolationError: the two disagree.  Nothing has been
                committed; the caller rolls back.
        """
        self.session.flush()
        lot_sum = self._lots.lot_sum(product.id)
        if lot_sum != product.stock:
            logger.critical(
                "stock_invariant_violated",
                extra={
                    "invariant": LedgerInvariant.STOCK_EQUALS_LOT_SUM.value,
                    "product_id": str(product.id),
                    "stock": product.stock,
                    "lot_sum": lot_sum,
                },
            )
            raise InvariantViolationError(
                LedgerInvariant.STOCK_EQUALS_LOT_SUM.value,
                str(product.id),
                expected=product.stock,
                actual=lot_sum,
            )
        return lot_sum
