#!/usr/bin/env python3
"""
Print lot ledger history, newest first.

Usage:
    python3 scripts/view_ledger.py
    python3 scripts/view_ledger.py --operacion salida --search tornillo --limit 50
"""

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 100


def _fmt(v) -> str:
    if v is None:
        return "-"
    return f"${Decimal(str(v)):,.2f}"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="View lot ledger history.")
    parser.add_argument("--config", help="YAML settings file (default: $LOTLEDGER_CONFIG)")
    parser.add_argument("--operacion", help="creacion, entrada, salida, ajuste or eliminacion")
    parser.add_argument("--search", help="Match product name or code")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--limit", type=int)
    args = parser.parse_args(argv)

    logging.disable(logging.CRITICAL)

    from ledger_config import get_settings
    from ledger_kernel.db.engine import init_engine_from_url, session_scope
    from ledger_kernel.selectors import HistorySelector

    settings = get_settings(args.config)
    init_engine_from_url(settings.database_url, echo=False)

    with session_scope() as session:
        history = HistorySelector(
            session,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
        ).query(
            operacion=args.operacion,
            search=args.search,
            page=args.page,
            limit=args.limit,
        )

    if not history.entries:
        print("  No ledger entries found.")
        return 1

    print()
    print("=" * W)
    print("LOT LEDGER".center(W))
    print("=" * W)
    print(
        f"  {'Seq':>6} {'Fecha':<20} {'Operacion':<12} {'Codigo':<12} "
        f"{'Cant':>6} {'Stock':>12} {'Lote':>6} {'Costo':>12}"
    )
    print(f"  {'-'*6} {'-'*20} {'-'*12} {'-'*12} {'-'*6} {'-'*12} {'-'*6} {'-'*12}")
    for entry in history.entries:
        stock = f"{entry.stock_anterior}->{entry.stock_nuevo}"
        lote = "-" if entry.stock_lote is None else str(entry.stock_lote)
        print(
            f"  {entry.seq:>6} {entry.fecha:%Y-%m-%d %H:%M:%S}  {entry.operacion.value:<12} "
            f"{entry.codigo_producto:<12} {entry.cantidad:>6} {stock:>12} {lote:>6} "
            f"{_fmt(entry.costo_final):>12}"
        )
    print()
    print(
        f"  Page {history.page}/{history.pages}  |  {history.total} entries  |  "
        f"units {history.total_cantidad}  |  open lot units {history.total_stock_lote}"
    )
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
