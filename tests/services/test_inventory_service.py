"""
InventoryService tests.

Tests cover:
- Registration: opening lot, landed cost, duplicate code, validation
- Restock: weighted average, landed cost of the new lot, lot ordering
- Manual stock edits: FIFO decrease, lot-opening increase, no-op
- Descriptive updates and deletion
- Invariant: stock equals the sum of open lot units after every call
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.values import LedgerOperation
from ledger_kernel.exceptions import (
    DuplicateProductCodeError,
    InsufficientStockError,
    ProductHasStockError,
    ProductNotFoundError,
    ValidationError,
)
from ledger_services import AdjustmentResult, RestockResult


def _assert_invariant(product_selector, lot_selector, product_id):
    assert product_selector.get(product_id).stock == lot_selector.lot_sum(product_id)


# =========================================================================
# Registration
# =========================================================================


class TestRegisterProduct:

    def test_creates_product_and_opening_lot(
        self, inventory_service, product_selector, lot_selector, history_selector,
    ):
        product_id = inventory_service.register_product(
            codigo="  A-1 ",
            nombre="Tornillo",
            costo_inicial=Decimal("5.00"),
            cantidad=10,
            proveedor="Ferretería Sur",
            acarreo=Decimal("10"),
            flete=Decimal("10"),
        )

        product = product_selector.get(product_id)
        assert product.codigo == "A-1"
        assert product.stock == 10
        assert product.cantidad == 10
        assert product.costo_inicial == Decimal("5.00")
        assert product.costo_final == Decimal("7.00")

        lots = lot_selector.list_lots(product_id)
        assert len(lots) == 1
        assert lots[0].stock_lote == 10
        assert lots[0].costo_final == Decimal("7.00")

        entry = history_selector.query(product_id=product_id).entries[0]
        assert entry.operacion is LedgerOperation.CREACION
        assert (entry.stock_anterior, entry.stock_nuevo) == (0, 10)
        _assert_invariant(product_selector, lot_selector, product_id)

    def test_duplicate_code_rejected(self, make_product, product_selector):
        make_product(codigo="DUP-1")

        with pytest.raises(DuplicateProductCodeError) as exc_info:
            make_product(codigo=" DUP-1")

        assert exc_info.value.codigo == "DUP-1"
        assert product_selector.list_products().total == 1

    @pytest.mark.parametrize(
        "overrides",
        [
            {"codigo": "   "},
            {"nombre": ""},
            {"costo_inicial": Decimal("0")},
            {"costo_inicial": Decimal("-1")},
            {"cantidad": 0},
            {"cantidad": 2.5},
            {"acarreo": Decimal("-1")},
            {"fecha_ingreso": datetime(2024, 2, 1)},
        ],
    )
    def test_invalid_input_rejected_before_writes(
        self, inventory_service, product_selector, overrides,
    ):
        kwargs = dict(
            codigo="X-1",
            nombre="Tuerca",
            costo_inicial=Decimal("1.00"),
            cantidad=3,
        )
        kwargs.update(overrides)

        with pytest.raises(ValidationError):
            inventory_service.register_product(**kwargs)
        assert product_selector.list_products().total == 0

    def test_proveedor_trimmed(self, make_product, product_selector):
        assert product_selector.get(make_product(proveedor="  ACME  ")).proveedor == "ACME"
        assert product_selector.get(make_product(proveedor="   ")).proveedor is None

    def test_logs_started_and_completed(self, make_product, captured_logs):
        make_product()

        messages = [r["message"] for r in captured_logs()]
        assert "product_registration_started" in messages
        assert "product_registration_completed" in messages
        completed = next(
            r for r in captured_logs() if r["message"] == "product_registration_completed"
        )
        assert "duration_ms" in completed
        assert "correlation_id" in completed


# =========================================================================
# Restock
# =========================================================================


class TestRestock:

    def test_weighted_average_and_landed_cost(
        self, make_product, inventory_service, product_selector, lot_selector,
        deterministic_clock,
    ):
        product_id = make_product(cantidad=10, costo_inicial=Decimal("2.00"))
        deterministic_clock.advance(60)

        result = inventory_service.restock(
            product_id,
            incoming_quantity=10,
            incoming_unit_cost=Decimal("4.00"),
            acarreo=Decimal("3.00"),
            flete=Decimal("2.00"),
        )

        assert isinstance(result, RestockResult)
        assert result.new_unit_cost == Decimal("3.00")
        assert result.new_landed_cost == Decimal("4.50")
        assert (result.stock_anterior, result.stock_nuevo) == (10, 20)

        product = product_selector.get(product_id)
        assert product.costo_inicial == Decimal("3.00")
        assert product.costo_final == Decimal("4.50")
        assert product.acarreo == Decimal("3.00")
        assert product.flete == Decimal("2.00")
        assert product.cantidad == 20
        assert product.stock == 20

        lots = lot_selector.list_lots(product_id)
        assert [lot.costo_final for lot in lots] == [Decimal("2.00"), Decimal("4.50")]
        assert lots[1].lot_id == result.entry_id
        _assert_invariant(product_selector, lot_selector, product_id)

    def test_average_uses_cumulative_quantity_not_stock(
        self, make_product, inventory_service, sale_service, product_selector,
    ):
        product_id = make_product(cantidad=10, costo_inicial=Decimal("2.00"))
        sale_service.register_sale(
            "F-1",
            [{"product_id": product_id, "cantidad": 8, "precio_unitario": Decimal("5")}],
        )

        result = inventory_service.restock(product_id, 10, Decimal("4.00"))

        # 10 received at 2.00 and 10 at 4.00, regardless of the 8 sold
        assert result.new_unit_cost == Decimal("3.00")
        assert product_selector.get(product_id).stock == 12

    def test_explicit_timestamp_and_detalles(
        self, make_product, inventory_service, history_selector, deterministic_clock,
    ):
        product_id = make_product()
        stamp = deterministic_clock.now() + timedelta(days=1)

        result = inventory_service.restock(
            product_id, 5, Decimal("3.00"), timestamp=stamp, detalles="Factura 991"
        )

        entry = history_selector.query(product_id=product_id).entries[0]
        assert entry.entry_id == result.entry_id
        assert entry.fecha == stamp
        assert entry.detalles == "Factura 991"
        assert entry.stock_lote == 5

    def test_unknown_product(self, inventory_service):
        with pytest.raises(ProductNotFoundError):
            inventory_service.restock(uuid4(), 5, Decimal("1.00"))

    def test_invalid_quantity_rolls_back(
        self, make_product, inventory_service, product_selector, lot_selector,
    ):
        product_id = make_product(cantidad=4)

        with pytest.raises(ValidationError):
            inventory_service.restock(product_id, 0, Decimal("1.00"))

        assert product_selector.get(product_id).stock == 4
        assert len(lot_selector.list_lots(product_id)) == 1

    def test_naive_timestamp_rejected_before_writes(
        self, make_product, inventory_service, product_selector, lot_selector,
        captured_logs,
    ):
        product_id = make_product(cantidad=4)

        with pytest.raises(ValidationError) as exc_info:
            inventory_service.restock(
                product_id, 3, Decimal("4.00"), timestamp=datetime(2024, 2, 1)
            )

        assert exc_info.value.field_errors[0]["field"] == "timestamp"
        assert product_selector.get(product_id).stock == 4
        assert len(lot_selector.list_lots(product_id)) == 1
        assert not any(r["message"] == "restock_failed" for r in captured_logs())


# =========================================================================
# Manual stock edits
# =========================================================================


class TestAdjustStock:

    def test_decrease_consumes_oldest_lots(
        self, fifo_product, inventory_service, lot_selector, product_selector,
        history_selector,
    ):
        result = inventory_service.adjust_stock(fifo_product, 4)

        assert isinstance(result, AdjustmentResult)
        assert result.operacion is LedgerOperation.AJUSTE
        assert (result.stock_anterior, result.stock_nuevo) == (10, 4)
        assert [lot.stock_lote for lot in lot_selector.list_lots(fifo_product)] == [2, 2]

        entry = history_selector.query(operacion="ajuste").entries[0]
        assert entry.entry_id == result.entry_id
        assert entry.cantidad == 6
        assert entry.detalles == "Ajuste mediante edición de producto"
        assert lot_selector.consumed_total(entry.entry_id) == 6
        _assert_invariant(product_selector, lot_selector, fifo_product)

    def test_increase_opens_lot_at_current_landed_cost(
        self, fifo_product, inventory_service, lot_selector, product_selector,
    ):
        before = product_selector.get(fifo_product)

        result = inventory_service.adjust_stock(fifo_product, 13, detalles="Conteo físico")

        assert result.operacion is LedgerOperation.ENTRADA
        newest = lot_selector.list_lots_newest_first(fifo_product)[0]
        assert newest.lot_id == result.entry_id
        assert newest.stock_lote == 3
        assert newest.costo_final == before.costo_final

        after = product_selector.get(fifo_product)
        assert after.stock == 13
        assert after.cantidad == before.cantidad + 3
        _assert_invariant(product_selector, lot_selector, fifo_product)

    def test_same_stock_is_noop(self, fifo_product, inventory_service, history_selector):
        before = history_selector.query().total

        result = inventory_service.adjust_stock(fifo_product, 10)

        assert result.entry_id is None
        assert result.operacion is None
        assert history_selector.query().total == before

    @pytest.mark.parametrize("new_stock", [-1, "5", True])
    def test_invalid_target_rejected(self, fifo_product, inventory_service, new_stock):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(fifo_product, new_stock)

    def test_decrease_to_zero_then_sale_fails(
        self, fifo_product, inventory_service, sale_service,
    ):
        inventory_service.adjust_stock(fifo_product, 0)

        with pytest.raises(InsufficientStockError):
            sale_service.allocate(fifo_product, 1, Decimal("1.00"))


# =========================================================================
# Details and deletion
# =========================================================================


class TestUpdateAndDelete:

    def test_update_details_writes_no_entry(
        self, make_product, inventory_service, product_selector, history_selector,
    ):
        product_id = make_product(nombre="Tornillo")
        before = history_selector.query().total

        inventory_service.update_product_details(
            product_id, nombre="Tornillo 3/8", proveedor="Acme"
        )

        product = product_selector.get(product_id)
        assert product.nombre == "Tornillo 3/8"
        assert product.proveedor == "Acme"
        assert history_selector.query().total == before

    def test_update_rejects_blank_name(self, make_product, inventory_service):
        product_id = make_product()
        with pytest.raises(ValidationError):
            inventory_service.update_product_details(product_id, nombre=" ")

    def test_delete_requires_zero_stock(
        self, make_product, inventory_service, product_selector,
    ):
        product_id = make_product(cantidad=3)

        with pytest.raises(ProductHasStockError) as exc_info:
            inventory_service.delete_product(product_id)

        assert exc_info.value.stock == 3
        assert product_selector.get(product_id).stock == 3

    def test_delete_keeps_history(
        self, make_product, inventory_service, product_selector, history_selector,
    ):
        product_id = make_product(cantidad=3, codigo="DEL-1")
        inventory_service.adjust_stock(product_id, 0)

        entry_id = inventory_service.delete_product(product_id)

        with pytest.raises(ProductNotFoundError):
            product_selector.get(product_id)
        history = history_selector.query(product_id=product_id)
        assert [e.operacion for e in history.entries] == [
            LedgerOperation.ELIMINACION,
            LedgerOperation.AJUSTE,
            LedgerOperation.CREACION,
        ]
        assert history.entries[0].entry_id == entry_id
        assert history.entries[0].codigo_producto == "DEL-1"

    def test_code_reusable_after_delete(self, make_product, inventory_service):
        product_id = make_product(cantidad=1, codigo="REUSE")
        inventory_service.adjust_stock(product_id, 0)
        inventory_service.delete_product(product_id)

        assert make_product(codigo="REUSE") != product_id
