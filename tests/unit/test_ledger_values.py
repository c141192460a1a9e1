"""Domain value tests: operations, sale status machine, lot snapshots, plans."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.allocation import AllocationPlan, LotAllocation
from ledger_kernel.domain.clock import DeterministicClock, SystemClock
from ledger_kernel.domain.values import (
    LOT_OPERATIONS,
    LedgerOperation,
    LotSnapshot,
    SaleStatus,
    VoidCreditPolicy,
)

T0 = datetime(2024, 1, 1, tzinfo=UTC)


class TestLedgerOperation:

    def test_only_creation_and_entrada_open_lots(self):
        assert LOT_OPERATIONS == {LedgerOperation.CREACION, LedgerOperation.ENTRADA}
        assert LedgerOperation.ENTRADA.can_open_lot
        assert not LedgerOperation.SALIDA.can_open_lot
        assert not LedgerOperation.AJUSTE.can_open_lot
        assert not LedgerOperation.ELIMINACION.can_open_lot

    def test_values_are_stored_strings(self):
        assert LedgerOperation("salida") is LedgerOperation.SALIDA


class TestSaleStatus:
    """activa -> anulada | devuelta; both terminal."""

    @pytest.mark.parametrize("target", [SaleStatus.ANULADA, SaleStatus.DEVUELTA])
    def test_activa_transitions(self, target):
        assert SaleStatus.ACTIVA.can_transition_to(target)

    @pytest.mark.parametrize("source", [SaleStatus.ANULADA, SaleStatus.DEVUELTA])
    def test_terminal_states_do_not_move(self, source):
        assert source.is_terminal
        for target in SaleStatus:
            assert not source.can_transition_to(target)

    def test_activa_not_terminal(self):
        assert not SaleStatus.ACTIVA.is_terminal
        assert not SaleStatus.ACTIVA.can_transition_to(SaleStatus.ACTIVA)


class TestVoidCreditPolicy:

    def test_values(self):
        assert VoidCreditPolicy("latest_lot") is VoidCreditPolicy.LATEST_LOT
        assert VoidCreditPolicy("original_lots") is VoidCreditPolicy.ORIGINAL_LOTS


class TestLotSnapshot:

    def _snapshot(self, stock_lote, cantidad=5):
        return LotSnapshot(
            lot_id=uuid4(),
            product_id=uuid4(),
            fecha=T0,
            seq=1,
            cantidad=cantidad,
            stock_lote=stock_lote,
            costo_final=Decimal("1.00"),
        )

    @pytest.mark.parametrize("stock_lote", [0, 3, 5])
    def test_within_bounds(self, stock_lote):
        assert self._snapshot(stock_lote).stock_lote == stock_lote

    @pytest.mark.parametrize("stock_lote", [-1, 6])
    def test_out_of_bounds_rejected(self, stock_lote):
        with pytest.raises(ValueError, match="out of bounds"):
            self._snapshot(stock_lote)

    def test_fifo_key(self):
        snap = self._snapshot(1)
        assert snap.fifo_key == (T0, 1)


class TestAllocationPlan:

    def _allocation(self, quantity, cost="2.00"):
        return LotAllocation(
            lot_id=uuid4(), quantity=quantity, unit_cost=Decimal(cost), fecha=T0, seq=1
        )

    def test_steps_must_sum_to_request(self):
        with pytest.raises(ValueError, match="sum to 3"):
            AllocationPlan(
                product_id=uuid4(),
                requested_quantity=4,
                unit_price=Decimal("5"),
                allocations=(self._allocation(3),),
                total_cost=Decimal("6.00"),
                profit=Decimal("14.00"),
            )

    def test_zero_step_rejected(self):
        with pytest.raises(ValueError):
            self._allocation(0)

    def test_allocation_cost(self):
        assert self._allocation(3, "2.50").cost == Decimal("7.50")


class TestClock:

    def test_deterministic_clock_advances(self):
        clock = DeterministicClock(T0)
        assert clock.now() == T0
        clock.advance(30)
        assert clock.now() == T0 + timedelta(seconds=30)
        assert clock.advance() == T0 + timedelta(seconds=31)

    def test_set_time(self):
        clock = DeterministicClock(T0)
        later = T0 + timedelta(days=2)
        clock.set_time(later)
        assert clock.now() == later

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None

    def test_naive_start_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            DeterministicClock(datetime(2024, 1, 1))
