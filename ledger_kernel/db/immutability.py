"""
ORM-Level Immutability Enforcement for the append-only ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

The lot ledger is an audit trail: history is corrected by appending new
entries (a void writes a compensating entrada), never by editing or deleting
old ones.  The one mutable field is a lot's ``stock_lote``, which moves as
sales and voids consume and credit units.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
The listeners below check them:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Guarded Core UPDATE statements issued by the commit boundary do not pass
through these listeners.  They touch ``stock_lote`` only.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule
------------------|-------------------------------------------------------
LotLedgerEntry    | Never deleted.  Lots: only stock_lote may change.
                  | salida/ajuste/eliminacion and movement-only entries:
                  | no field may change.
LotConsumption    | Never updated or deleted.
Sale              | Never deleted.  Only estado and voided_at may change;
                  | estado only along SaleStatus transitions.
SaleLine          | Never updated or deleted.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to plant a corrupted row may unregister temporarily:

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect

from ledger_kernel.domain.values import SaleStatus
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"created_at"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    extra = {
        "invariant": "append_only",
        "entity_type": entity_type,
        "entity_id": str(target.id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_ledger_entry_immutability(mapper, connection, target):
    """Only a lot's ``stock_lote`` may change after insert."""
    from ledger_kernel.models.ledger_entry import LotLedgerEntry

    if not isinstance(target, LotLedgerEntry):
        return

    # is_lot reads the new values; a NULL -> value change is caught below
    allowed = {"stock_lote"} if target.is_lot else set()
    for field in _changed_fields(target):
        if field in allowed:
            hist = inspect(target).attrs.stock_lote.history
            if hist.deleted and hist.deleted[0] is None:
                _block(
                    "LotLedgerEntry", target, "UPDATE",
                    "Cannot turn a movement-only entry into a lot", field,
                )
            continue
        _block(
            "LotLedgerEntry", target, "UPDATE",
            f"Cannot modify field '{field}' on {target.operacion} ledger entry",
            field,
        )


def _check_ledger_entry_delete(mapper, connection, target):
    _block("LotLedgerEntry", target, "DELETE", "Ledger entries cannot be deleted")


def _check_consumption_immutability(mapper, connection, target):
    _block("LotConsumption", target, "UPDATE", "Lot consumptions are immutable")


def _check_consumption_delete(mapper, connection, target):
    _block("LotConsumption", target, "DELETE", "Lot consumptions cannot be deleted")


def _check_sale_immutability(mapper, connection, target):
    """Only the status fields of a sale may change; estado follows SaleStatus."""
    for field in _changed_fields(target):
        if field in ("voided_at", "lines"):
            continue
        if field == "estado":
            hist = inspect(target).attrs.estado.history
            if hist.deleted and hist.added:
                old, new = SaleStatus(hist.deleted[0]), SaleStatus(hist.added[0])
                if not old.can_transition_to(new):
                    _block(
                        "Sale", target, "UPDATE",
                        f"Sale status cannot move from {old.value} to {new.value}", field,
                    )
            continue
        _block("Sale", target, "UPDATE", f"Cannot modify field '{field}' on sale", field)


def _check_sale_delete(mapper, connection, target):
    _block("Sale", target, "DELETE", "Sales cannot be deleted; void them instead")


def _check_sale_line_immutability(mapper, connection, target):
    _block("SaleLine", target, "UPDATE", "Sale lines are immutable")


def _check_sale_line_delete(mapper, connection, target):
    _block("SaleLine", target, "DELETE", "Sale lines cannot be deleted")


def _listeners():
    from ledger_kernel.models.ledger_entry import LotConsumption, LotLedgerEntry
    from ledger_kernel.models.sale import Sale, SaleLine

    return [
        (LotLedgerEntry, "before_update", _check_ledger_entry_immutability),
        (LotLedgerEntry, "before_delete", _check_ledger_entry_delete),
        (LotConsumption, "before_update", _check_consumption_immutability),
        (LotConsumption, "before_delete", _check_consumption_delete),
        (Sale, "before_update", _check_sale_immutability),
        (Sale, "before_delete", _check_sale_delete),
        (SaleLine, "before_update", _check_sale_line_immutability),
        (SaleLine, "before_delete", _check_sale_line_delete),
    ]


def register_immutability_listeners():
    """Install the append-only listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must plant a corrupted row.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
