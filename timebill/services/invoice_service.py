from __future__ import annotations
from typing import Iterable, List, Optional
import logging

from timebill.config import INVOICES_KEY
from timebill.models.common import Clock, system_clock
from timebill.models.entry import WorkEntry
from timebill.models.invoice import Invoice, InvoiceLineItem, InvoiceTotals
from timebill.services.client_service import ClientService
from timebill.services.entry_service import EntryService
from timebill.services.errors import AlreadyInvoiced, MixedClients, NoEntries
from timebill.services.rounding import billed_minutes
from timebill.services.settings_service import SettingsService
from timebill.storage.json_repo import JsonStore, load_records, save_records

logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Invoice engine.

    A draft invoice points at its entries and recomputes line items on
    every request. mark_paid() freezes line items and totals into the
    invoice; from then on the snapshot is the only source of truth.
    """

    def __init__(
        self,
        entries: EntryService,
        clients: ClientService,
        settings: SettingsService,
        store: Optional[JsonStore] = None,
        clock: Clock = system_clock,
    ):
        self.entries = entries
        self.clients = clients
        self.settings = settings
        self.store = store
        self.clock = clock
        self._invoices: List[Invoice] = load_records(store, INVOICES_KEY, Invoice)

    def _save(self) -> None:
        save_records(self.store, INVOICES_KEY, self._invoices)

    def _find(self, invoice_id: Optional[str]) -> Optional[Invoice]:
        if invoice_id is None:
            return None
        for inv in self._invoices:
            if inv.id == invoice_id:
                return inv
        return None

    # ----------- lookups -----------
    def list_invoices(self) -> List[Invoice]:
        return [inv.model_copy(deep=True) for inv in self._invoices]

    def list_for_client(self, client_id: str) -> List[Invoice]:
        return [inv.model_copy(deep=True) for inv in self._invoices if inv.client_id == client_id]

    def get_by_id(self, invoice_id: Optional[str]) -> Optional[Invoice]:
        inv = self._find(invoice_id)
        return inv.model_copy(deep=True) if inv else None

    def draft_invoice(self, client_id: str) -> Optional[Invoice]:
        for inv in self._invoices:
            if inv.client_id == client_id and inv.is_draft:
                return inv.model_copy(deep=True)
        return None

    # ----------- numbering -----------
    def next_invoice_number(self) -> str:
        year = self.clock().year
        prefix = f"{year}-"
        existing = sum(1 for inv in self._invoices if inv.number.startswith(prefix))
        return f"{prefix}{existing + 1:04d}"

    # ----------- entry state -----------
    def is_entry_invoiced(self, entry: WorkEntry) -> bool:
        return entry.invoice_id is not None

    def is_entry_paid(self, entry: WorkEntry) -> bool:
        """Authoritative lock check: callers reject edit/delete when True."""
        inv = self._find(entry.invoice_id)
        return inv is not None and inv.is_paid

    def entry_needs_review(self, entry: WorkEntry) -> bool:
        inv = self._find(entry.invoice_id)
        if inv is None or not inv.is_draft:
            return False
        return self._edited_after_invoicing(entry)

    @staticmethod
    def _edited_after_invoicing(entry: WorkEntry) -> bool:
        if entry.invoiced_at is None or entry.edited_at is None:
            return False
        return entry.edited_at > entry.invoiced_at

    def draft_invoice_needs_review(self, invoice: Invoice) -> bool:
        if not invoice.is_draft:
            return False
        linked = self.entries.by_ids(invoice.entry_ids)
        return any(self._edited_after_invoicing(e) for e in linked.values())

    # ----------- totals -----------
    def billed_minutes_for(self, entry: WorkEntry) -> int:
        return billed_minutes(entry.minutes, self.settings.rounding_increment_minutes)

    def live_line_items(self, invoice: Invoice) -> List[InvoiceLineItem]:
        by_id = self.entries.by_ids(invoice.entry_ids)
        items = [
            InvoiceLineItem.from_entry(by_id[eid], self.billed_minutes_for(by_id[eid]))
            for eid in invoice.entry_ids
            if eid in by_id  # deleted entries are skipped
        ]
        return sorted(items, key=lambda it: it.start_date)

    @staticmethod
    def _sum(items: Iterable[InvoiceLineItem]) -> InvoiceTotals:
        hours = 0.0
        amount = 0.0
        for it in items:
            hours += it.billed_hours
            amount += it.amount
        return InvoiceTotals(hours=hours, amount=amount)

    def live_totals(self, invoice: Invoice) -> InvoiceTotals:
        return self._sum(self.live_line_items(invoice))

    def totals_for_invoice(self, invoice: Invoice) -> InvoiceTotals:
        if (
            invoice.is_paid
            and invoice.frozen_total_hours is not None
            and invoice.frozen_total_amount is not None
        ):
            return InvoiceTotals(hours=invoice.frozen_total_hours, amount=invoice.frozen_total_amount)
        return self.live_totals(invoice)

    def line_items_for_invoice(self, invoice: Invoice) -> List[InvoiceLineItem]:
        if invoice.is_paid and invoice.frozen_line_items is not None:
            return [it.model_copy() for it in invoice.frozen_line_items]
        return self.live_line_items(invoice)

    # ----------- lifecycle -----------
    def create_or_add_to_draft(self, client_id: str, entry_ids: Iterable[str]) -> Invoice:
        """
        Link unbilled entries of one client to that client's draft invoice,
        creating the draft if needed. Raises before any change when:
        - no id resolves to an entry (NoEntries)
        - entries belong to another client (MixedClients)
        - an entry is already linked to an invoice (AlreadyInvoiced)
        """
        wanted = list(dict.fromkeys(entry_ids))
        by_id = self.entries.by_ids(wanted)
        selected = [by_id[eid] for eid in wanted if eid in by_id]

        if not selected:
            raise NoEntries("No entries selected")
        others = [e.id for e in selected if e.client_id != client_id]
        if others:
            raise MixedClients("Entries belong to more than one client", others)
        billed = [e.id for e in selected if e.invoice_id is not None]
        if billed:
            raise AlreadyInvoiced("One or more entries are already invoiced", billed)

        now = self.clock()
        new_ids = [e.id for e in selected]
        inv = next((i for i in self._invoices if i.client_id == client_id and i.is_draft), None)
        if inv is not None:
            inv.entry_ids = inv.entry_ids + [eid for eid in new_ids if eid not in inv.entry_ids]
            logger.info("Draft invoice %s: %d entr%s added", inv.number, len(new_ids),
                        "y" if len(new_ids) == 1 else "ies")
        else:
            inv = Invoice(
                number=self.next_invoice_number(),
                client_id=client_id,
                created_at=now,
                entry_ids=new_ids,
            )
            self._invoices.append(inv)
            logger.info("Draft invoice %s created for '%s' (%d entries)",
                        inv.number, self.clients.client_name(client_id), len(new_ids))

        self.entries.update_entries(
            e.model_copy(update={"invoice_id": inv.id, "invoiced_at": now}) for e in selected
        )
        self._save()
        return inv.model_copy(deep=True)

    def mark_paid(self, invoice_id: str) -> Optional[Invoice]:
        """Finalize a draft: snapshot line items and totals. One-way; no-op when already paid."""
        inv = self._find(invoice_id)
        if inv is None:
            logger.warning("mark_paid: invoice %s not found", invoice_id)
            return None
        if not inv.is_draft:
            return inv.model_copy(deep=True)

        needs_review = self.draft_invoice_needs_review(inv)
        items = self.live_line_items(inv)
        totals = self._sum(items)

        inv.status = "paid"
        inv.paid_at = self.clock()
        inv.frozen_line_items = items
        inv.frozen_total_hours = totals.hours
        inv.frozen_total_amount = totals.amount
        self._save()

        if needs_review:
            logger.warning("Invoice %s paid with entries edited after invoicing", inv.number)
        logger.info("Invoice %s paid: %.2f h, %.2f", inv.number, totals.hours, totals.amount)
        return inv.model_copy(deep=True)

