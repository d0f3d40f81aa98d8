from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from .common import gen_id

class WorkEntry(BaseModel):
    id: str = Field(default_factory=gen_id)
    client_id: str
    start_date: datetime
    end_date: datetime
    hourly_rate: float = 0.0  # snapshot of the client rate at creation
    note: Optional[str] = None

    # invoice link (double-billing guard)
    invoice_id: Optional[str] = None
    invoiced_at: Optional[datetime] = None

    # edit audit
    edited_at: Optional[datetime] = None
    edit_count: int = 0

    # helpers
    @property
    def seconds(self) -> float:
        return max(0.0, (self.end_date - self.start_date).total_seconds())

    @property
    def minutes(self) -> int:
        return max(0, int(self.seconds / 60.0))

    @property
    def hours_exact(self) -> float:
        return self.seconds / 3600.0

    class Config:
        extra = "ignore"  # older records without audit fields still load
