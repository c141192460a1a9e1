#!/usr/bin/env python3
"""
Check the lot ledger for stock discrepancies.

Runs LedgerAuditor over every product (or one, with --product) and prints
each discrepancy.  Exits 1 when any are found, so the check can run from
cron or CI.  The auditor only reports; it never repairs.

Usage:
    python3 scripts/check_ledger.py
    python3 scripts/check_ledger.py --config ledger.yaml
    LOTLEDGER_DATABASE_URL=postgresql://ledger@localhost/ledger python3 scripts/check_ledger.py
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 80


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check lot ledger consistency.")
    parser.add_argument("--config", help="YAML settings file (default: $LOTLEDGER_CONFIG)")
    parser.add_argument("--database-url", help="Override the configured database URL")
    parser.add_argument("--product", type=UUID, help="Check a single product id")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from ledger_config import get_settings
    from ledger_kernel.db.engine import init_engine_from_url, session_scope
    from ledger_kernel.logging_config import configure_logging
    from ledger_kernel.services.ledger_auditor import AuditReport, LedgerAuditor

    settings = get_settings(args.config)
    configure_logging(level=settings.log_level_number)
    init_engine_from_url(
        args.database_url or settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
    )

    with session_scope() as session:
        auditor = LedgerAuditor(session)
        if args.product is not None:
            report = AuditReport(
                products_checked=1,
                discrepancies=auditor.check_product(args.product),
            )
        else:
            report = auditor.check_all()

    print()
    print("=" * W)
    print("LOT LEDGER CHECK".center(W))
    print("=" * W)
    print()
    for discrepancy in report.discrepancies:
        print(f"  {discrepancy.describe()}")
    if report.discrepancies:
        print()
    print(f"  Products checked: {report.products_checked}")
    print(f"  Discrepancies:    {len(report.discrepancies)}")
    print()
    return 0 if report.is_clean else 1


if __name__ == "__main__":
    sys.exit(main())
