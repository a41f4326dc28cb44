"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A ledger must fail precisely. Callers (invoicing, purchasing, POS and payment
modules, report endpoints) need to branch on the kind of failure without
parsing message strings:

    try:
        store.post(tenant_id, request)
    except ClosedPeriodError as e:              # typed catch
        respond(code=e.code, period=e.period_code)
    except UnbalancedEntryError as e:           # structured data
        log.warning("unbalanced", extra={"debits": e.total_debit})

Every exception therefore has:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured attributes carrying the offending values

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- InvalidEntryError
    |   +-- EntryNotFoundError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- AccountInUseError
    |   +-- DuplicateAccountCodeError
    |   +-- InvalidHierarchyError
    |
    +-- CostCenterError
    |   +-- CostCenterNotFoundError
    |   +-- DuplicateCostCenterCodeError
    |   +-- CostCenterInUseError
    |
    +-- PeriodError
    |   +-- ClosedPeriodError
    |   +-- PeriodNotFoundError
    |   +-- PeriodOverlapError
    |   +-- PeriodStateError
    |
    +-- ReversalError
    |   +-- EntryAlreadyReversedError
    |
    +-- LedgerIntegrityError
    +-- InvalidDateRangeError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Posting         | UNBALANCED_ENTRY            | Debits != Credits
                | INVALID_ENTRY               | Fewer than two lines, bad line amounts
                | ENTRY_NOT_FOUND             | Entry id/number unknown for tenant
----------------|-----------------------------|-----------------------------------------
Account         | ACCOUNT_NOT_FOUND           | Account doesn't exist in this tenant
                | ACCOUNT_INACTIVE            | Posting to a deactivated account
                | ACCOUNT_IN_USE              | Delete/type change on referenced account
                | DUPLICATE_ACCOUNT_CODE      | Code already used in this tenant
                | INVALID_HIERARCHY           | Parent type disallowed, cycle, children
----------------|-----------------------------|-----------------------------------------
Cost center     | COST_CENTER_NOT_FOUND       | Cost center unknown for tenant
                | DUPLICATE_COST_CENTER_CODE  | Normalized code already used
                | COST_CENTER_IN_USE          | Delete of a tagged cost center
----------------|-----------------------------|-----------------------------------------
Period          | CLOSED_PERIOD               | Ordinary posting into CLOSING/CLOSED
                | PERIOD_NOT_FOUND            | No period for code/date/end date
                | PERIOD_OVERLAP              | Date range conflicts with a period
                | PERIOD_STATE                | Invalid OPEN/CLOSING/CLOSED transition
----------------|-----------------------------|-----------------------------------------
Reversal        | ENTRY_ALREADY_REVERSED      | Entry already has a reversal
----------------|-----------------------------|-----------------------------------------
Integrity       | LEDGER_INTEGRITY            | Stored data violates double entry
Reporting       | INVALID_DATE_RANGE          | date_from > date_to
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of posted data

===============================================================================
HANDLING PATTERNS
===============================================================================

Posting errors are raised before any row is written, so no compensation is
ever needed. LedgerIntegrityError is different: it means previously accepted
data breaks the double-entry invariant. It is logged at ERROR by the code
that detects it and must reach an operator. Never catch it to continue.
"""


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


# =============================================================================
# Posting
# =============================================================================


class PostingError(LedgerError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, total_debit: int, total_credit: int):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Entry is unbalanced: debits={total_debit}, credits={total_credit}"
        )


class InvalidEntryError(PostingError):
    """Entry or line shape is invalid (line count, amounts, sides)."""

    code: str = "INVALID_ENTRY"

    def __init__(self, reason: str, line_index: int | None = None):
        self.reason = reason
        self.line_index = line_index
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(f"Invalid journal entry{where}: {reason}")


class EntryNotFoundError(PostingError):
    """Journal entry does not exist for the tenant."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_ref: str):
        self.entry_ref = entry_ref
        super().__init__(f"Journal entry not found: {entry_ref}")


# =============================================================================
# Accounts
# =============================================================================


class AccountError(LedgerError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account does not exist, or belongs to another tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class AccountInactiveError(AccountError):
    """Account is deactivated and cannot receive postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str, account_code: str):
        self.account_id = account_id
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


class AccountInUseError(AccountError):
    """Account is referenced by journal lines."""

    code: str = "ACCOUNT_IN_USE"

    def __init__(self, account_id: str, reason: str = "referenced by journal lines"):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Account {account_id} is in use: {reason}")


class DuplicateAccountCodeError(AccountError):
    """Account code already exists in the tenant's chart."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class InvalidHierarchyError(AccountError):
    """Parent/child placement violates the tenant's hierarchy rules."""

    code: str = "INVALID_HIERARCHY"

    def __init__(self, node_id: str | None, parent_id: str | None, reason: str):
        self.node_id = node_id
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(f"Invalid hierarchy: {reason}")


# =============================================================================
# Cost centers
# =============================================================================


class CostCenterError(LedgerError):
    """Base exception for cost-center errors."""

    code: str = "COST_CENTER_ERROR"


class CostCenterNotFoundError(CostCenterError):
    """Cost center does not exist for the tenant."""

    code: str = "COST_CENTER_NOT_FOUND"

    def __init__(self, cost_center_ref: str):
        self.cost_center_ref = cost_center_ref
        super().__init__(f"Cost center not found: {cost_center_ref}")


class DuplicateCostCenterCodeError(CostCenterError):
    """Normalized cost-center code already exists in the tenant."""

    code: str = "DUPLICATE_COST_CENTER_CODE"

    def __init__(self, cost_center_code: str):
        self.cost_center_code = cost_center_code
        super().__init__(f"Cost center code already exists: {cost_center_code}")


class CostCenterInUseError(CostCenterError):
    """Cost center is tagged on journal lines or has children."""

    code: str = "COST_CENTER_IN_USE"

    def __init__(self, cost_center_id: str, reason: str):
        self.cost_center_id = cost_center_id
        self.reason = reason
        super().__init__(f"Cost center {cost_center_id} is in use: {reason}")


# =============================================================================
# Periods
# =============================================================================


class PeriodError(LedgerError):
    """Base exception for fiscal period errors."""

    code: str = "PERIOD_ERROR"


class ClosedPeriodError(PeriodError):
    """Ordinary posting dated inside a closing or closed period."""

    code: str = "CLOSED_PERIOD"

    def __init__(self, period_code: str, entry_date: str):
        self.period_code = period_code
        self.entry_date = entry_date
        super().__init__(
            f"Cannot post to closed period {period_code} for date {entry_date}"
        )


class PeriodNotFoundError(PeriodError):
    """No fiscal period matches the lookup."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_ref: str):
        self.period_ref = period_ref
        super().__init__(f"Fiscal period not found: {period_ref}")


class PeriodOverlapError(PeriodError):
    """New period's date range intersects an existing period."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, new_period_code: str, existing_period_code: str):
        self.new_period_code = new_period_code
        self.existing_period_code = existing_period_code
        super().__init__(
            f"Period {new_period_code} overlaps existing period "
            f"{existing_period_code}"
        )


class PeriodStateError(PeriodError):
    """Requested transition is not valid from the period's current status."""

    code: str = "PERIOD_STATE"

    def __init__(self, period_code: str, status: str, action: str):
        self.period_code = period_code
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} period {period_code} in status {status}"
        )


# =============================================================================
# Reversal
# =============================================================================


class ReversalError(LedgerError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryAlreadyReversedError(ReversalError):
    """Entry already has a reversing entry."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_id: str, reversal_entry_id: str):
        self.entry_id = entry_id
        self.reversal_entry_id = reversal_entry_id
        super().__init__(
            f"Entry {entry_id} was already reversed by {reversal_entry_id}"
        )


# =============================================================================
# Integrity, ranges, immutability
# =============================================================================


class LedgerIntegrityError(LedgerError):
    """
    Stored ledger data violates a double-entry invariant.

    Fatal: indicates previously accepted data is inconsistent. Never
    swallowed or auto-corrected.
    """

    code: str = "LEDGER_INTEGRITY"

    def __init__(self, check: str, expected: int | str, actual: int | str, detail: str = ""):
        self.check = check
        self.expected = expected
        self.actual = actual
        self.detail = detail
        suffix = f" ({detail})" if detail else ""
        super().__init__(
            f"Ledger integrity check '{check}' failed: "
            f"expected {expected}, got {actual}{suffix}"
        )


class InvalidDateRangeError(LedgerError):
    """Range start is after range end."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, date_from: str, date_to: str):
        self.date_from = date_from
        self.date_to = date_to
        super().__init__(f"Invalid date range: {date_from} is after {date_to}")


class ImmutabilityViolationError(LedgerError):
    """Attempt to modify or delete append-only ledger data."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
