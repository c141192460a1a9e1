"""
BaseService -- shared constructor for the kernel's flush-only services.

Kernel services (LedgerWriter, SaleCommitter, LedgerAuditor) work inside a
transaction someone else opened.  They flush so later statements in the
same transaction see their rows, and leave commit and rollback to the
orchestrators in ``ledger_services``.  A sale's lot decrements, salida
entry and stock update therefore land together or not at all.
"""

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock


class BaseService:
    """Holds the session and the clock entries are stamped with."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
