"""
LedgerAuditor tests.

The auditor re-derives the ledger invariants from stored rows.  Corrupted
rows are planted with Core statements, which bypass the ORM listeners the
same way a manual SQL edit would.
"""

import importlib.util
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import update

from ledger_kernel.db.engine import reset_engine
from ledger_kernel.exceptions import ProductNotFoundError
from ledger_kernel.invariants import LedgerInvariant
from ledger_kernel.models.ledger_entry import LotConsumption
from ledger_kernel.models.product import Product
from ledger_kernel.services.ledger_auditor import LedgerAuditor

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "check_ledger.py"


@pytest.fixture
def auditor(session):
    return LedgerAuditor(session)


@pytest.fixture
def sold_product(fifo_product, sale_service):
    receipt = sale_service.register_sale(
        "AUD-1",
        [{"product_id": fifo_product, "cantidad": 6, "precio_unitario": Decimal("15.00")}],
    )
    return fifo_product, receipt


def _corrupt_stock(session, product_id, stock):
    session.execute(update(Product).where(Product.id == product_id).values(stock=stock))
    session.commit()


class TestCheckProduct:

    def test_clean_after_normal_activity(self, auditor, sold_product, void_service):
        product_id, receipt = sold_product
        void_service.void_sale(receipt.sale_id)

        assert auditor.check_product(product_id) == []

    def test_counter_drift_reported(self, session, auditor, sold_product, captured_logs):
        product_id, _ = sold_product
        _corrupt_stock(session, product_id, 7)

        found = auditor.check_product(product_id)

        assert len(found) == 1
        assert found[0].invariant is LedgerInvariant.STOCK_EQUALS_LOT_SUM
        assert (found[0].expected, found[0].actual) == (7, 4)
        assert "expected 7, actual 4" in found[0].describe()
        assert any(r["message"] == "ledger_discrepancy_found" for r in captured_logs())

    def test_consumption_mismatch_reported(self, session, auditor, sold_product, lot_selector):
        product_id, receipt = sold_product
        salida_id = receipt.lines[0].salida_entry_id
        lot = lot_selector.list_lots(product_id)[-1]
        session.add(
            LotConsumption(
                entry_id=salida_id,
                lot_id=lot.lot_id,
                position=9,
                cantidad=1,
                costo_unitario=Decimal("15.00"),
            )
        )
        session.commit()

        found = auditor.check_product(product_id)

        assert [d.invariant for d in found] == [LedgerInvariant.SALIDA_MATCHES_CONSUMPTION]
        assert found[0].entity_id == salida_id
        assert (found[0].expected, found[0].actual) == (6, 7)

    def test_unknown_product(self, auditor):
        from uuid import uuid4

        with pytest.raises(ProductNotFoundError):
            auditor.check_product(uuid4())


class TestCheckAll:

    def test_empty_database_is_clean(self, auditor):
        report = auditor.check_all()

        assert report.is_clean
        assert report.products_checked == 0

    def test_counts_every_product(self, session, auditor, sold_product, make_product):
        product_id, _ = sold_product
        make_product(cantidad=3)
        _corrupt_stock(session, product_id, 0)

        report = auditor.check_all()

        assert report.products_checked == 2
        assert not report.is_clean
        assert {d.product_id for d in report.discrepancies} == {product_id}


class TestCheckLedgerScript:

    @pytest.fixture
    def check_ledger(self, monkeypatch):
        monkeypatch.delenv("LOTLEDGER_CONFIG", raising=False)
        spec = importlib.util.spec_from_file_location("check_ledger", SCRIPT)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        yield module
        reset_engine()

    def test_exit_code_tracks_report(self, engine, session, sold_product, check_ledger, capsys):
        product_id, _ = sold_product
        url = engine.url.render_as_string(hide_password=False)

        assert check_ledger.main(["--database-url", url]) == 0
        assert "Discrepancies:    0" in capsys.readouterr().out

        _corrupt_stock(session, product_id, 9)

        assert check_ledger.main(["--database-url", url, "--product", str(product_id)]) == 1
        out = capsys.readouterr().out
        assert LedgerInvariant.STOCK_EQUALS_LOT_SUM.value in out
