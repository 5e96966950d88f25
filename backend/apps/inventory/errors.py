"""Typed failures raised by the stock accounting engine and transfer workflow.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with. They are raised inside ``transaction.atomic`` blocks, so the
surrounding transaction is always rolled back before the caller sees them.
"""

from __future__ import annotations


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 409

    def __init__(self, detail: str, field_errors: dict | None = None):
        super().__init__(detail)
        self.detail = detail
        self.field_errors = field_errors or {}


class InsufficientStock(LedgerError):
    code = "insufficient_stock"


class InvalidStateTransition(LedgerError):
    code = "invalid_state_transition"


class CrossBranchMismatch(LedgerError):
    code = "cross_branch_mismatch"
    status_code = 400


class CrossItemMismatch(LedgerError):
    code = "cross_item_mismatch"
    status_code = 400


class ImmutableFieldViolation(LedgerError):
    code = "immutable_field"


class PermissionDenied(LedgerError):
    code = "permission_denied"
    status_code = 403


class MissingReason(LedgerError):
    code = "missing_reason"
    status_code = 400


class TransferNotPending(LedgerError):
    code = "transfer_not_pending"


class SameBranchTransfer(LedgerError):
    code = "same_branch_transfer"
    status_code = 400


class InvalidQuantity(LedgerError):
    code = "invalid_quantity"
    status_code = 400


class UnknownReference(LedgerError):
    code = "unknown_reference"
    status_code = 404


class UnparsableLogDetails(LedgerError):
    code = "unparsable_log_details"


class InvalidCode(LedgerError):
    code = "invalid_code"
    status_code = 400
