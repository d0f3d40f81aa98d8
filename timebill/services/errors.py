"""
Billing error taxonomy.

Closed set of failure kinds. Validation errors (NoEntries, MixedClients,
AlreadyInvoiced) are raised before any mutation; LockedEntry is raised at
the workflow boundary; PersistenceFailure and UnparsableImportRow are
caught internally and only logged / counted.
"""
from __future__ import annotations
from enum import Enum
from typing import Iterable, Tuple


class ErrorKind(str, Enum):
    NO_ENTRIES = "no_entries"
    MIXED_CLIENTS = "mixed_clients"
    ALREADY_INVOICED = "already_invoiced"
    LOCKED_ENTRY = "locked_entry"
    PERSISTENCE_FAILURE = "persistence_failure"
    UNPARSABLE_IMPORT_ROW = "unparsable_import_row"


class BillingError(Exception):
    kind: ErrorKind

    def __init__(self, message: str, entry_ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.entry_ids: Tuple[str, ...] = tuple(entry_ids)


class NoEntries(BillingError):
    kind = ErrorKind.NO_ENTRIES


class MixedClients(BillingError):
    kind = ErrorKind.MIXED_CLIENTS


class AlreadyInvoiced(BillingError):
    kind = ErrorKind.ALREADY_INVOICED


class LockedEntry(BillingError):
    kind = ErrorKind.LOCKED_ENTRY


class PersistenceFailure(BillingError):
    kind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(self, key: str, cause: Exception) -> None:
        super().__init__(f"Cannot save '{key}': {cause}")
        self.key = key
        self.cause = cause


class UnparsableImportRow(BillingError):
    kind = ErrorKind.UNPARSABLE_IMPORT_ROW

    def __init__(self, line_no: int, reason: str) -> None:
        super().__init__(f"Row {line_no}: {reason}")
        self.line_no = line_no
