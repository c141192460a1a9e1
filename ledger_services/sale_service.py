"""
SaleService -- FIFO allocation and sale registration.

Responsibility:
    ``allocate()`` plans a sale line against a read-only lot snapshot.
    ``commit_sale()`` applies one plan through the kernel commit boundary.
    ``register_sale()`` records a whole invoice: one ``salida`` entry per
    line, the Sale row and its lines, in one transaction that is retried
    against fresh state when a concurrent sale got there first.

Architecture position:
    Services -- composes the FIFO engine with the kernel SaleCommitter.

Failure modes:
    - ValidationError: malformed line, empty invoice, bad quantity/price.
    - DuplicateInvoiceError: ``nr_factura`` already registered.
    - ProductNotFoundError: a line names an unknown product.
    - InsufficientStockError: open lots cannot cover a line.  No writes.
    - ConcurrentModificationError: still stale after
      ``settings.max_commit_attempts`` attempts.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select

from ledger_engines.fifo import (
    plan_fifo_allocation,
    validate_amount,
    validate_quantity,
    validate_timestamp,
)
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.allocation import AllocationPlan
from ledger_kernel.domain.values import SaleStatus
from ledger_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateInvoiceError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sale import Sale, SaleLine
from ledger_kernel.selectors.lot_selector import LotSelector
from ledger_kernel.selectors.product_selector import ProductSelector
from ledger_kernel.services.sale_commit import CommittedConsumption, SaleCommitter
from ledger_services.base import LedgerOrchestrator

logger = get_logger("services.sale")


@dataclass(frozen=True)
class SaleLineRequest:
    """One requested line of an invoice."""

    product_id: UUID
    cantidad: int
    precio_unitario: Decimal

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SaleLineRequest:
        missing = [k for k in ("product_id", "cantidad", "precio_unitario") if k not in data]
        if missing:
            raise ValidationError(
                f"Sale line is missing {missing}",
                [{"field": k, "message": "is required"} for k in missing],
            )
        product_id = data["product_id"]
        if not isinstance(product_id, UUID):
            try:
                product_id = UUID(str(product_id))
            except ValueError as exc:
                raise ValidationError.for_field(
                    "product_id", "not a valid id", product_id
                ) from exc
        return cls(
            product_id=product_id,
            cantidad=validate_quantity(data["cantidad"]),
            precio_unitario=validate_amount(data["precio_unitario"], "precio_unitario"),
        )


@dataclass(frozen=True)
class SaleLineReceipt:
    line_no: int
    product_id: UUID
    cantidad: int
    precio_unitario: Decimal
    costo_unitario: Decimal
    costo_total: Decimal
    ganancia_total: Decimal
    salida_entry_id: UUID


@dataclass(frozen=True)
class SaleReceipt:
    """A registered sale with its totals."""

    sale_id: UUID
    nr_factura: str
    fecha: datetime
    total: Decimal
    costo_total: Decimal
    ganancia_total: Decimal
    lines: tuple[SaleLineReceipt, ...]
    attempts: int


class SaleService(LedgerOrchestrator):
    """
    Sale allocation and registration.

    Usage:
        service = SaleService(session, clock=clock, settings=settings)
        plan = service.allocate(product_id, 6, Decimal("15.00"))
        receipt = service.register_sale(
            "F-0001",
            [{"product_id": product_id, "cantidad": 6,
              "precio_unitario": Decimal("15.00")}],
        )
    """

    def __init__(self, session, clock=None, settings=None, auto_commit=True):
        super().__init__(session, clock, settings, auto_commit)
        self._committer = SaleCommitter(session, self._clock)
        self._lots = LotSelector(session)
        self._products = ProductSelector(session)

    def allocate(
        self,
        product_id: UUID,
        requested_quantity: int,
        unit_price: Decimal,
        sale_timestamp: datetime | None = None,
    ) -> AllocationPlan:
        """
        Plan a sale line FIFO over the product's open lots.

        Read-only: takes no locks and writes nothing.  The plan may be
        stale by the time it is committed; ``commit_sale`` re-validates.

        Raises:
            ProductNotFoundError: unknown product.
            InsufficientStockError: open lots hold fewer than requested.
        """
        sale_timestamp = validate_timestamp(sale_timestamp, "sale_timestamp")
        self._products.get(product_id)
        return plan_fifo_allocation(
            product_id=product_id,
            lots=self._lots.list_lots(product_id),
            requested_quantity=requested_quantity,
            unit_price=unit_price,
            as_of=sale_timestamp,
        )

    def commit_sale(self, plan: AllocationPlan, sale_id: UUID) -> CommittedConsumption:
        """
        Apply a plan as one transaction.

        Raises:
            ConcurrentModificationError: a planned lot no longer holds its
                step quantity.  Nothing was written; re-plan and retry.
        """
        return self._run_in_transaction(
            "sale_commit",
            lambda: self._committer.commit_sale(plan, sale_id),
            context={"product_id": plan.product_id, "sale_id": sale_id},
            quantity=plan.requested_quantity,
        )

    def register_sale(
        self,
        nr_factura: str,
        lines: Iterable[SaleLineRequest | Mapping[str, Any]],
        fecha: datetime | None = None,
    ) -> SaleReceipt:
        """
        Register an invoice and consume stock for every line.

        The transaction is re-planned from scratch after a
        ConcurrentModificationError, up to ``max_commit_attempts`` times.
        """
        if not isinstance(nr_factura, str) or not nr_factura.strip():
            raise ValidationError.for_field("nr_factura", "is required", nr_factura)
        nr_factura = nr_factura.strip()
        requests = [
            line if isinstance(line, SaleLineRequest) else SaleLineRequest.from_mapping(line)
            for line in lines
        ]
        if not requests:
            raise ValidationError.for_field("lines", "a sale needs at least one line")
        fecha = validate_timestamp(fecha, "fecha")

        max_attempts = self._settings.max_commit_attempts if self._auto_commit else 1
        attempt = 0
        while True:
            attempt += 1
            sale_id = uuid4()
            try:
                return self._run_in_transaction(
                    "sale_registration",
                    lambda: self._register(sale_id, nr_factura, requests, fecha, attempt),
                    context={"sale_id": sale_id},
                    nr_factura=nr_factura,
                    line_count=len(requests),
                    attempt=attempt,
                )
            except ConcurrentModificationError:
                if attempt >= max_attempts:
                    logger.error(
                        "sale_registration_retries_exhausted",
                        extra={"nr_factura": nr_factura, "attempts": attempt},
                    )
                    raise
                logger.warning(
                    "sale_registration_retrying",
                    extra={"nr_factura": nr_factura, "attempt": attempt},
                )

    def _register(
        self,
        sale_id: UUID,
        nr_factura: str,
        requests: list[SaleLineRequest],
        fecha: datetime | None,
        attempt: int,
    ) -> SaleReceipt:
        existing = self._session.execute(
            select(Sale.id).where(Sale.nr_factura == nr_factura)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateInvoiceError(nr_factura)

        fecha = fecha or self._clock.now()
        receipts: list[SaleLineReceipt] = []
        for line_no, request in enumerate(requests, start=1):
            plan = self.allocate(
                request.product_id,
                request.cantidad,
                request.precio_unitario,
                sale_timestamp=fecha,
            )
            committed = self._committer.commit_sale(plan, sale_id)
            receipts.append(
                SaleLineReceipt(
                    line_no=line_no,
                    product_id=request.product_id,
                    cantidad=request.cantidad,
                    precio_unitario=request.precio_unitario,
                    costo_unitario=plan.weighted_unit_cost,
                    costo_total=committed.total_cost,
                    ganancia_total=committed.profit,
                    salida_entry_id=committed.entry_id,
                )
            )

        total = round_money(sum((r.precio_unitario * r.cantidad for r in receipts), ZERO))
        costo_total = round_money(sum((r.costo_total for r in receipts), ZERO))
        ganancia_total = round_money(sum((r.ganancia_total for r in receipts), ZERO))

        sale = Sale(
            id=sale_id,
            nr_factura=nr_factura,
            fecha=fecha,
            estado=SaleStatus.ACTIVA.value,
            total=total,
            costo_total=costo_total,
            ganancia_total=ganancia_total,
            lines=[
                SaleLine(
                    line_no=r.line_no,
                    product_id=r.product_id,
                    cantidad=r.cantidad,
                    precio_unitario=r.precio_unitario,
                    costo_unitario=r.costo_unitario,
                    costo_total=r.costo_total,
                    ganancia_unitaria=round_money(r.precio_unitario - r.costo_unitario),
                    ganancia_total=r.ganancia_total,
                    salida_entry_id=r.salida_entry_id,
                )
                for r in receipts
            ],
        )
        self._session.add(sale)
        self._session.flush()

        return SaleReceipt(
            sale_id=sale_id,
            nr_factura=nr_factura,
            fecha=fecha,
            total=total,
            costo_total=costo_total,
            ganancia_total=ganancia_total,
            lines=tuple(receipts),
            attempts=attempt,
        )
