"""
Property-based tests over random sequences of ledger operations.

Hypothesis drives restocks, sales, voids and manual adjustments against a
fresh in-memory database per example.  After every operation:

- product.stock equals the sum of open lot balances
- every lot stays within 0 <= stock_lote <= cantidad
- a rejected operation leaves both numbers where they were

and at the end the auditor finds nothing.
"""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy.orm import sessionmaker

from ledger_config.settings import LedgerSettings
from ledger_kernel.db.engine import build_engine, create_tables
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.exceptions import AlreadyVoidedError, InsufficientStockError
from ledger_kernel.selectors import LotSelector, ProductSelector
from ledger_kernel.services.ledger_auditor import LedgerAuditor
from ledger_services import InventoryService, SaleService, VoidService

pytestmark = pytest.mark.slow


restock_ops = st.tuples(
    st.just("restock"),
    st.integers(min_value=1, max_value=6),
    st.decimals(min_value="0.50", max_value="40.00", places=2),
)
sell_ops = st.tuples(
    st.just("sell"),
    st.integers(min_value=1, max_value=9),
    st.decimals(min_value="1.00", max_value="60.00", places=2),
)
void_ops = st.tuples(st.just("void"), st.integers(min_value=0, max_value=20))
adjust_ops = st.tuples(st.just("adjust"), st.integers(min_value=0, max_value=15))

operations = st.lists(
    st.one_of(restock_ops, sell_ops, void_ops, adjust_ops),
    min_size=1,
    max_size=25,
)


class LedgerHarness:
    """One product on a throwaway database."""

    def __init__(self, policy: str):
        self.engine = build_engine("sqlite://")
        create_tables(self.engine)
        self.session = sessionmaker(bind=self.engine, expire_on_commit=False)()
        clock = DeterministicClock()
        ledger_settings = LedgerSettings(database_url="sqlite://", void_credit_policy=policy)

        self.clock = clock
        self.inventory = InventoryService(self.session, clock=clock, settings=ledger_settings)
        self.sales = SaleService(self.session, clock=clock, settings=ledger_settings)
        self.voids = VoidService(self.session, clock=clock, settings=ledger_settings)
        self.lots = LotSelector(self.session)
        self.products = ProductSelector(self.session)
        self.sale_ids = []
        self.invoices = 0

        self.product_id = self.inventory.register_product(
            codigo="FZ-1", nombre="Fuzz", costo_inicial=Decimal("10.00"), cantidad=5,
        )

    def close(self):
        self.session.close()
        self.engine.dispose()

    def stock(self) -> int:
        return self.products.get(self.product_id).stock

    def apply(self, op) -> None:
        self.clock.advance(30)
        kind = op[0]
        if kind == "restock":
            self.inventory.restock(self.product_id, op[1], op[2])
        elif kind == "sell":
            self.invoices += 1
            receipt = self.sales.register_sale(
                f"FZ-{self.invoices}",
                [{"product_id": self.product_id, "cantidad": op[1], "precio_unitario": op[2]}],
            )
            self.sale_ids.append(receipt.sale_id)
        elif kind == "void":
            if self.sale_ids:
                self.voids.void_sale(self.sale_ids[op[1] % len(self.sale_ids)])
        else:
            self.inventory.adjust_stock(self.product_id, op[1])

    def assert_consistent(self) -> None:
        lots = self.lots.list_lots(self.product_id, include_empty=True)
        assert self.stock() == sum(lot.stock_lote for lot in lots)
        for lot in lots:
            assert 0 <= lot.stock_lote <= lot.cantidad


@pytest.mark.parametrize("policy", ["latest_lot", "original_lots"])
@settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
@given(ops=operations)
def test_stock_always_matches_lots(policy, ops):
    harness = LedgerHarness(policy)
    try:
        harness.assert_consistent()
        for op in ops:
            before = harness.stock()
            try:
                harness.apply(op)
            except (InsufficientStockError, AlreadyVoidedError):
                assert harness.stock() == before
            harness.assert_consistent()

        assert LedgerAuditor(harness.session).check_all().is_clean
    finally:
        harness.close()


@settings(max_examples=30, deadline=None)
@given(
    sales=st.lists(st.integers(min_value=1, max_value=4), min_size=1, max_size=6),
)
def test_voiding_everything_restores_stock(sales):
    harness = LedgerHarness("latest_lot")
    try:
        harness.inventory.restock(harness.product_id, 20, Decimal("12.00"))
        start = harness.stock()
        for quantity in sales:
            harness.apply(("sell", quantity, Decimal("20.00")))
        for sale_id in harness.sale_ids:
            harness.voids.void_sale(sale_id)

        assert harness.stock() == start
        harness.assert_consistent()
    finally:
        harness.close()
