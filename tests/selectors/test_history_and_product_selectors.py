"""
History and product selector tests.

Verifies:
- History is newest first with totals over every match, not just the page.
- Page and limit are clamped; get_all returns one page.
- Search is case-insensitive, capped in length, and treats LIKE
  wildcards literally.
- Date ranges are validated.
- Product listing searches name, code and supplier.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from ledger_kernel.domain.values import LedgerOperation
from ledger_kernel.exceptions import ProductNotFoundError, ValidationError
from ledger_kernel.selectors import HistorySelector


@pytest.fixture
def sold(fifo_product, sale_service):
    receipt = sale_service.register_sale(
        "H-1",
        [{"product_id": fifo_product, "cantidad": 6, "precio_unitario": Decimal("15.00")}],
    )
    return fifo_product, receipt


class TestHistoryQuery:

    def test_newest_first_with_totals(self, sold, history_selector):
        product_id, _ = sold

        page = history_selector.query(product_id=product_id)

        assert [e.operacion for e in page.entries] == [
            LedgerOperation.SALIDA,
            LedgerOperation.ENTRADA,
            LedgerOperation.ENTRADA,
            LedgerOperation.CREACION,
        ]
        assert page.total == 4
        assert page.total_cantidad == 16
        # salida entries hold no lot
        assert page.total_stock_lote == 4
        assert page.pages == 1

    def test_filter_by_operation(self, sold, history_selector):
        page = history_selector.query(operacion="entrada")

        assert page.total == 2
        assert {e.cantidad for e in page.entries} == {3, 2}

    def test_unknown_operation_rejected(self, history_selector):
        with pytest.raises(ValueError):
            history_selector.query(operacion="robo")

    def test_totals_cover_all_pages(self, sold, history_selector):
        page = history_selector.query(page=2, limit=3)

        assert page.total == 4
        assert page.pages == 2
        assert len(page.entries) == 1
        assert page.entries[0].operacion is LedgerOperation.CREACION
        assert page.total_cantidad == 16

    def test_page_and_limit_clamped(self, sold, session):
        selector = HistorySelector(session, default_page_size=2, max_page_size=3)

        page = selector.query(page=0, limit=500)
        assert (page.page, page.limit, len(page.entries)) == (1, 3, 3)

        page = selector.query(page=-4, limit=0)
        assert (page.page, page.limit, len(page.entries)) == (1, 1, 1)

        assert selector.query().limit == 2

    def test_get_all_ignores_paging(self, sold, session):
        selector = HistorySelector(session, default_page_size=1, max_page_size=1)

        page = selector.query(get_all=True, page=3)

        assert page.page == 1
        assert len(page.entries) == page.total == 4

    def test_get_all_on_empty_ledger(self, history_selector):
        page = history_selector.query(get_all=True)

        assert page.entries == ()
        assert page.total == 0
        assert page.limit == 1

    def test_search_name_and_code(self, sold, make_product, history_selector):
        make_product(cantidad=1, codigo="CLAVO-9", nombre="Clavo")

        assert history_selector.query(search="fifo").total == 4
        assert history_selector.query(search="CLAV").total == 1
        assert history_selector.query(search="tornillo").total == 4

    def test_search_wildcards_are_literal(self, make_product, history_selector):
        make_product(cantidad=1, codigo="A_1", nombre="Tuerca")
        make_product(cantidad=1, codigo="AB1", nombre="Arandela")

        page = history_selector.query(search="a_1")

        assert page.total == 1
        assert page.entries[0].codigo_producto == "A_1"
        assert history_selector.query(search="%").total == 0

    def test_search_too_long(self, history_selector):
        with pytest.raises(ValidationError, match="50"):
            history_selector.query(search="x" * 51)

    def test_date_range(self, sold, history_selector, deterministic_clock):
        now = deterministic_clock.now()

        page = history_selector.query(start=now - timedelta(seconds=150), end=now)

        # the two restocks and the sale
        assert page.total == 3

    def test_start_after_end_rejected(self, history_selector, deterministic_clock):
        now = deterministic_clock.now()

        with pytest.raises(ValidationError, match="start"):
            history_selector.query(start=now, end=now - timedelta(days=1))

    def test_entries_for_sale_include_void(self, sold, void_service, history_selector):
        _, receipt = sold
        void_service.void_sale(receipt.sale_id)

        entries = history_selector.entries_for_sale(receipt.sale_id)

        assert [e.operacion for e in entries] == [
            LedgerOperation.SALIDA,
            LedgerOperation.ENTRADA,
        ]
        assert entries[1].stock_lote is None
        assert entries[1].stock_nuevo == 10


class TestProductSelector:

    def test_get_and_find(self, fifo_product, product_selector):
        view = product_selector.get(fifo_product)

        assert view.stock == 10
        assert view.cantidad == 10
        assert product_selector.find_by_code(" FIFO-1 ").product_id == fifo_product
        assert product_selector.find_by_code("NOPE") is None

    def test_get_unknown(self, product_selector):
        from uuid import uuid4

        with pytest.raises(ProductNotFoundError):
            product_selector.get(uuid4())

    def test_list_search_and_paging(
        self, make_product, product_selector, deterministic_clock,
    ):
        make_product(codigo="T-1", nombre="Tornillo", proveedor="Ferretera Sur")
        deterministic_clock.advance(10)
        make_product(codigo="T-2", nombre="Tuerca", proveedor="Ferretera Norte")
        deterministic_clock.advance(10)
        make_product(codigo="C-1", nombre="Clavo")

        everything = product_selector.list_products(limit=2)
        assert everything.total == 3
        assert everything.pages == 2
        assert [p.codigo for p in everything.products] == ["C-1", "T-2"]

        by_supplier = product_selector.list_products(search="ferretera")
        assert {p.codigo for p in by_supplier.products} == {"T-1", "T-2"}

        assert product_selector.list_products(search="CLAVO").total == 1
