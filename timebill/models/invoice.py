from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from .common import gen_id
from .entry import WorkEntry

InvoiceStatus = Literal["draft", "paid"]  # paid == finalized

class InvoiceLineItem(BaseModel):
    id: str = Field(default_factory=gen_id)
    entry_id: str
    start_date: datetime
    end_date: datetime
    billed_minutes: int = 0
    rate: float = 0.0
    amount: float = 0.0
    note: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: WorkEntry, billed_minutes: int) -> "InvoiceLineItem":
        return cls(
            entry_id=entry.id,
            start_date=entry.start_date,
            end_date=entry.end_date,
            billed_minutes=billed_minutes,
            rate=entry.hourly_rate,
            amount=(billed_minutes / 60.0) * entry.hourly_rate,
            note=entry.note,
        )

    @property
    def billed_hours(self) -> float:
        return self.billed_minutes / 60.0

class InvoiceTotals(BaseModel):
    hours: float = 0.0
    amount: float = 0.0

class Invoice(BaseModel):
    id: str = Field(default_factory=gen_id)
    number: str
    client_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    status: InvoiceStatus = "draft"

    # draft: live pointers to entries
    entry_ids: List[str] = Field(default_factory=list)

    # snapshot once paid
    paid_at: Optional[datetime] = None
    frozen_line_items: Optional[List[InvoiceLineItem]] = None
    frozen_total_hours: Optional[float] = None
    frozen_total_amount: Optional[float] = None

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"

    class Config:
        extra = "ignore"
