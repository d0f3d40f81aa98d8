from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union
import logging

from timebill.config import data_dir
from timebill.models.client import Client
from timebill.models.common import Clock, system_clock
from timebill.models.entry import WorkEntry
from timebill.models.invoice import Invoice
from timebill.services.client_service import ClientService
from timebill.services.entry_service import EntryService
from timebill.services.errors import LockedEntry, MixedClients, NoEntries
from timebill.services.export_service import ExportService
from timebill.services.import_service import ImportResult, ImportService
from timebill.services.invoice_service import InvoiceService
from timebill.services.settings_service import SettingsService
from timebill.storage.json_repo import JsonStore

logger = logging.getLogger(__name__)


class WorkflowService:
    """Entry point for the presentation layer. Enforces the paid-entry lock."""

    def __init__(self, store: Optional[JsonStore] = None, clock: Clock = system_clock):
        self.store = store
        self.clock = clock
        self.settings = SettingsService(store)
        self.clients = ClientService(store)
        self.entries = EntryService(store, clock=clock)
        self.invoices = InvoiceService(self.entries, self.clients, self.settings, store, clock=clock)
        self.importer = ImportService(self.clients, self.entries)
        self.exporter = ExportService(self.clients, self.entries, self.invoices)

    @classmethod
    def open(cls, path: Union[str, Path, None] = None, clock: Clock = system_clock) -> "WorkflowService":
        return cls(JsonStore(path or data_dir()), clock=clock)

    # Clients
    def add_client(self, name: str, hourly_rate: float) -> Client:
        return self.clients.add_client(name, hourly_rate)

    def delete_clients(self, client_ids: Iterable[str]) -> int:
        return self.clients.delete_clients(client_ids)

    # Entries
    def record_entry(
        self,
        client_id: str,
        start: datetime,
        end: datetime,
        note: Optional[str] = None,
    ) -> WorkEntry:
        """Clock-in/clock-out result: the client's current rate is copied into the entry."""
        client = self.clients.get_by_id(client_id)
        if client is None:
            raise ValueError(f"Client with id={client_id} not found")
        if end < start:
            raise ValueError("End time cannot be before start time")
        entry = WorkEntry(
            client_id=client.id,
            start_date=start,
            end_date=end,
            hourly_rate=client.hourly_rate,
            note=(note or "").strip() or None,
        )
        return self.entries.add_entry(entry)

    def _check_unlocked(self, entries: Iterable[WorkEntry]) -> None:
        locked = [e.id for e in entries if self.invoices.is_entry_paid(e)]
        if locked:
            logger.warning("Rejected change on %d entr%s of a paid invoice", len(locked),
                           "y" if len(locked) == 1 else "ies")
            raise LockedEntry("Entry belongs to a paid invoice", locked)

    def edit_entry(self, entry: WorkEntry) -> WorkEntry:
        current = self.entries.get_by_id(entry.id)
        if current is None:
            raise ValueError(f"Entry with id={entry.id} not found")
        # lock is decided on the stored link, not on what the caller sends
        self._check_unlocked([current])
        # client and invoice link are not editable here
        entry = entry.model_copy(update={
            "client_id": current.client_id,
            "invoice_id": current.invoice_id,
            "invoiced_at": current.invoiced_at,
            "edit_count": current.edit_count,
        })
        return self.entries.edit_entry(entry)

    def delete_entries(self, entry_ids: Iterable[str]) -> int:
        targets = list(self.entries.by_ids(entry_ids).values())
        self._check_unlocked(targets)
        return self.entries.delete_entries(e.id for e in targets)

    # Invoices
    def invoice_selection(self, entry_ids: Iterable[str]) -> Invoice:
        """Invoice a selection; the client is taken from the selected entries."""
        selected = list(self.entries.by_ids(entry_ids).values())
        if not selected:
            raise NoEntries("No entries selected")
        client_ids = {e.client_id for e in selected}
        if len(client_ids) > 1:
            raise MixedClients("Select entries for only one client at a time", [e.id for e in selected])
        return self.invoices.create_or_add_to_draft(client_ids.pop(), [e.id for e in selected])

    def mark_paid(self, invoice_id: str) -> Optional[Invoice]:
        return self.invoices.mark_paid(invoice_id)

    def invoices_needing_review(self) -> List[Invoice]:
        return [inv for inv in self.invoices.list_invoices() if self.invoices.draft_invoice_needs_review(inv)]

    # Import / export
    def import_csv(self, text: str) -> ImportResult:
        return self.importer.import_csv(text)

    def export_csv(self, entries: Optional[Iterable[WorkEntry]] = None) -> str:
        return self.exporter.entries_csv(entries)

    def set_rounding_increment(self, minutes: int) -> None:
        self.settings.set_rounding_increment(minutes)
