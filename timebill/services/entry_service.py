from __future__ import annotations
from typing import Dict, Iterable, List, Optional
import logging

from timebill.config import ENTRIES_KEY
from timebill.models.common import Clock, system_clock
from timebill.models.entry import WorkEntry
from timebill.storage.json_repo import JsonStore, load_records, save_records

logger = logging.getLogger(__name__)


class EntryService:
    """
    Work entries keyed by id. Storage and lookup only: the caller checks
    InvoiceService.is_entry_paid() before edit_entry / delete_entries.
    """

    def __init__(self, store: Optional[JsonStore] = None, clock: Clock = system_clock):
        self.store = store
        self.clock = clock
        self._entries: List[WorkEntry] = load_records(store, ENTRIES_KEY, WorkEntry)

    def _save(self) -> None:
        save_records(self.store, ENTRIES_KEY, self._entries)

    def _index_of(self, entry_id: str) -> int:
        for i, e in enumerate(self._entries):
            if e.id == entry_id:
                return i
        return -1

    # ----------- CRUD/list -----------
    def list_entries(self) -> List[WorkEntry]:
        return [e.model_copy() for e in self._entries]

    def list_for_client(self, client_id: str) -> List[WorkEntry]:
        return [e.model_copy() for e in self._entries if e.client_id == client_id]

    def get_by_id(self, entry_id: Optional[str]) -> Optional[WorkEntry]:
        if entry_id is None:
            return None
        idx = self._index_of(entry_id)
        if idx < 0:
            return None
        return self._entries[idx].model_copy()

    def by_ids(self, entry_ids: Iterable[str]) -> Dict[str, WorkEntry]:
        ids = set(entry_ids)
        return {e.id: e.model_copy() for e in self._entries if e.id in ids}

    def add_entry(self, entry: WorkEntry) -> WorkEntry:
        return self.add_entries([entry])[0]

    def add_entries(self, entries: Iterable[WorkEntry]) -> List[WorkEntry]:
        added = [e.model_copy() for e in entries]
        if not added:
            return []
        known = {e.id for e in self._entries}
        for e in added:
            if e.id in known:
                raise ValueError(f"Entry with id={e.id} already exists")
            known.add(e.id)
        self._entries.extend(added)
        self._save()
        return [e.model_copy() for e in added]

    def update_entry(self, entry: WorkEntry) -> WorkEntry:
        return self.update_entries([entry])[0]

    def update_entries(self, entries: Iterable[WorkEntry]) -> List[WorkEntry]:
        """Replace records as given. Audit fields are not touched here."""
        updated = [e.model_copy() for e in entries]
        positions = []
        for e in updated:
            idx = self._index_of(e.id)
            if idx < 0:
                raise ValueError(f"Entry with id={e.id} not found")
            positions.append(idx)
        for idx, e in zip(positions, updated):
            self._entries[idx] = e
        if updated:
            self._save()
        return [e.model_copy() for e in updated]

    def edit_entry(self, entry: WorkEntry) -> WorkEntry:
        """Explicit edit path: bumps edit_count and stamps edited_at."""
        if entry.end_date < entry.start_date:
            raise ValueError("End time cannot be before start time")
        if self._index_of(entry.id) < 0:
            raise ValueError(f"Entry with id={entry.id} not found")
        edited = entry.model_copy(update={
            "edit_count": entry.edit_count + 1,
            "edited_at": self.clock(),
        })
        return self.update_entry(edited)

    def delete_entries(self, entry_ids: Iterable[str]) -> int:
        ids = set(entry_ids)
        kept = [e for e in self._entries if e.id not in ids]
        removed = len(self._entries) - len(kept)
        if removed:
            self._entries = kept
            self._save()
            logger.info("%d entr%s deleted", removed, "y" if removed == 1 else "ies")
        return removed
