"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted journal data is append-only.  Corrections are new REVERSAL or
ADJUSTING entries that leave a visible trail; nothing already posted is ever
edited or removed.  The services never issue such writes, and these listeners
make sure no other Python code path does either.

SQLAlchemy fires events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_flush]  --> deleted entries/lines, lines added to an existing
         |               entry, deleted referenced accounts
         v
    [before_update] --> changed entry/line columns, account type change
         |               on a referenced account
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule                                      | Error
----------------|-------------------------------------------|---------------------------
JournalEntry    | No UPDATE, no DELETE once flushed         | ImmutabilityViolationError
JournalLine     | No UPDATE, no DELETE, no late insert      | ImmutabilityViolationError
Account         | No DELETE while referenced by any line    | AccountInUseError
Account         | account_type frozen while referenced      | AccountInUseError

updated_at / updated_by_id are audit metadata and may change on any row.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to bypass the guard call unregister_immutability_listeners().
"""

from sqlalchemy import event, exists, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import AccountInUseError, ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalLine

logger = get_logger("db.immutability")

# Audit metadata that may change on otherwise immutable rows
_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _account_is_referenced(session: Session, account_id) -> bool:
    with session.no_autoflush:
        return bool(
            session.execute(
                select(exists().where(JournalLine.account_id == account_id))
            ).scalar()
        )


def _changed_columns(target) -> list[str]:
    changed = []
    for attr in inspect(target).mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(entity_type, str(entity_id), reason)


def _check_before_flush(session, flush_context, instances):
    """Deletes and late line inserts are only visible before the flush plan."""
    for obj in list(session.deleted):
        if isinstance(obj, JournalEntry):
            _block("JournalEntry", obj.id, "DELETE", "posted entries are append-only")
        elif isinstance(obj, JournalLine):
            _block("JournalLine", obj.id, "DELETE", "posted lines are append-only")
        elif isinstance(obj, Account) and _account_is_referenced(session, obj.id):
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Account",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "account_has_journal_lines",
                },
            )
            raise AccountInUseError(str(obj.id))

    for obj in list(session.new):
        if isinstance(obj, JournalLine) and obj.entry is not None:
            if inspect(obj.entry).persistent:
                _block(
                    "JournalLine",
                    obj.entry.id,
                    "INSERT",
                    "cannot add lines to a posted entry",
                )


def _check_journal_entry_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block("JournalEntry", target.id, "UPDATE", f"fields changed: {', '.join(changed)}")


def _check_journal_line_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block("JournalLine", target.id, "UPDATE", f"fields changed: {', '.join(changed)}")


def _check_account_update(mapper, connection, target):
    history = get_history(target, "account_type")
    if not history.deleted:
        return
    referenced = connection.execute(
        select(exists().where(JournalLine.account_id == target.id))
    ).scalar()
    if referenced:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "Account",
                "entity_id": str(target.id),
                "operation": "UPDATE",
                "reason": "account_type_locked",
            },
        )
        raise AccountInUseError(str(target.id), "account type is locked once referenced")


_registered = False


def register_immutability_listeners() -> None:
    """Install the ORM listeners (idempotent)."""
    global _registered
    if _registered:
        return
    event.listen(Session, "before_flush", _check_before_flush)
    event.listen(JournalEntry, "before_update", _check_journal_entry_update)
    event.listen(JournalLine, "before_update", _check_journal_line_update)
    event.listen(Account, "before_update", _check_account_update)
    _registered = True
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove the ORM listeners. FOR TESTING ONLY."""
    global _registered
    if not _registered:
        return
    event.remove(Session, "before_flush", _check_before_flush)
    event.remove(JournalEntry, "before_update", _check_journal_entry_update)
    event.remove(JournalLine, "before_update", _check_journal_line_update)
    event.remove(Account, "before_update", _check_account_update)
    _registered = False
