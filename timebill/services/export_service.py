from __future__ import annotations
from typing import Iterable, Literal, Optional
import csv
import io

from jinja2 import Environment, FileSystemLoader, select_autoescape

from timebill.config import TEMPLATES_DIR
from timebill.models.entry import WorkEntry
from timebill.models.invoice import Invoice
from timebill.services.client_service import ClientService
from timebill.services.entry_service import EntryService
from timebill.services.invoice_service import InvoiceService

EntryStatus = Literal["none", "invoiced", "paid"]

CSV_HEADER = [
    "Client", "Start Date", "Start Time", "End Date", "End Time",
    "Seconds", "Hours Exact", "Rate", "Note", "Invoice Status", "Needs Review",
]
STATUS_LABELS = {"paid": "Paid", "invoiced": "Invoiced (Draft)", "none": "Not invoiced"}


# ---------- Formats ----------
def _money(amount: float) -> str:
    return f"{amount:.2f}"


def _hours(hours: float) -> str:
    return f"{hours:.2f}"


def _stamp(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


class ExportService:
    """
    Renders invoices and entry lists. Totals and line items always come
    from InvoiceService; page layout and PDF conversion live elsewhere.
    """

    def __init__(self, clients: ClientService, entries: EntryService, invoices: InvoiceService):
        self.clients = clients
        self.entries = entries
        self.invoices = invoices
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    # ----------- entries -----------
    def entry_status(self, entry: WorkEntry) -> EntryStatus:
        if self.invoices.is_entry_paid(entry):
            return "paid"
        if self.invoices.is_entry_invoiced(entry):
            return "invoiced"
        return "none"

    def entries_csv(self, entries: Optional[Iterable[WorkEntry]] = None) -> str:
        """CSV in the format ImportService.import_csv reads back."""
        rows = self.entries.list_entries() if entries is None else list(entries)
        buf = io.StringIO()
        w = csv.writer(buf, lineterminator="\n")
        w.writerow(CSV_HEADER)
        for e in sorted(rows, key=lambda x: x.start_date):
            w.writerow([
                self.clients.client_name(e.client_id),
                e.start_date.strftime("%Y-%m-%d"),
                e.start_date.strftime("%H:%M"),
                e.end_date.strftime("%Y-%m-%d"),
                e.end_date.strftime("%H:%M"),
                int(e.seconds),
                f"{e.hours_exact:.4f}",
                f"{e.hourly_rate:.2f}",
                e.note or "",
                STATUS_LABELS[self.entry_status(e)],
                "YES" if self.invoices.entry_needs_review(e) else "NO",
            ])
        return buf.getvalue()

    # ----------- invoices -----------
    def _context(self, inv: Invoice) -> dict:
        items = self.invoices.line_items_for_invoice(inv)
        totals = self.invoices.totals_for_invoice(inv)
        return {
            "invoice": {
                "number": inv.number,
                "status": "Paid" if inv.is_paid else "Draft",
                "created_at": _stamp(inv.created_at),
                "paid_at": _stamp(inv.paid_at),
                "needs_review": self.invoices.draft_invoice_needs_review(inv),
                "lines": [
                    {
                        "start": _stamp(it.start_date),
                        "end": _stamp(it.end_date),
                        "hours": _hours(it.billed_hours),
                        "rate": _money(it.rate),
                        "amount": _money(it.amount),
                        "note": it.note or "",
                    } for it in items
                ],
                "total_hours": _hours(totals.hours),
                "total_amount": _money(totals.amount),
            },
            "client": {"name": self.clients.client_name(inv.client_id)},
            "rounding_increment": self.invoices.settings.rounding_increment_minutes,
        }

    def render_invoice_text(self, inv: Invoice) -> str:
        return self.env.get_template("invoice.txt").render(**self._context(inv))

    def render_invoice_html(self, inv: Invoice) -> str:
        return self.env.get_template("invoice.html").render(**self._context(inv))
