from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence
import csv
import io
import logging
import math
import re

from pydantic import BaseModel

from timebill.config import (
    DUPLICATE_RATE_TOLERANCE,
    DUPLICATE_TIME_TOLERANCE_SECONDS,
    IMPORT_DATETIME_FORMAT,
)
from timebill.models.entry import WorkEntry
from timebill.services.client_service import ClientService
from timebill.services.entry_service import EntryService
from timebill.services.errors import UnparsableImportRow

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("Client", "Start Date", "Start Time", "End Date", "End Time", "Rate")
NOTE_COLUMN = "Note"

_DECIMAL = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?", re.ASCII)


class ImportResult(BaseModel):
    imported_count: int = 0
    skipped_duplicate_count: int = 0
    created_client_count: int = 0


class ParsedRow(BaseModel):
    client_name: str
    start_date: datetime
    end_date: datetime
    hourly_rate: float
    note: Optional[str] = None


# ---------- Parsing ----------
def parse_rate(text: str) -> float:
    """Decimal with '.' or ',' separator. Anything unparsable counts as 0."""
    text = (text or "").strip().replace(",", ".")
    if not _DECIMAL.fullmatch(text):
        return 0.0
    value = float(text)
    return value if math.isfinite(value) else 0.0


def parse_stamp(day: str, time: str) -> datetime:
    return datetime.strptime(f"{day.strip()} {time.strip()}", IMPORT_DATETIME_FORMAT)


def normalize_note(note: Optional[str]) -> Optional[str]:
    note = (note or "").strip()
    return note or None


def _header_index(header: Sequence[str]) -> Dict[str, int]:
    # case-insensitive, first occurrence wins
    out: Dict[str, int] = {}
    for i, name in enumerate(header):
        out.setdefault(name.strip().casefold(), i)
    return out


def parse_row(row: Sequence[str], cols: Dict[str, int], line_no: int) -> ParsedRow:
    i_client, i_sd, i_st, i_ed, i_et, i_rate = (cols[c.casefold()] for c in REQUIRED_COLUMNS)
    if len(row) <= max(i_client, i_sd, i_st, i_ed, i_et, i_rate):
        raise UnparsableImportRow(line_no, "missing columns")

    client_name = row[i_client].strip()
    if not client_name:
        raise UnparsableImportRow(line_no, "empty client name")

    try:
        start = parse_stamp(row[i_sd], row[i_st])
        end = parse_stamp(row[i_ed], row[i_et])
    except ValueError as e:
        raise UnparsableImportRow(line_no, f"bad date ({e})") from e

    i_note = cols.get(NOTE_COLUMN.casefold())
    note = row[i_note] if i_note is not None and i_note < len(row) else None

    return ParsedRow(
        client_name=client_name,
        start_date=start,
        end_date=end,
        hourly_rate=parse_rate(row[i_rate]),
        note=normalize_note(note),
    )


# ---------- Duplicates ----------
def is_duplicate(candidate: WorkEntry, existing: Iterable[WorkEntry]) -> bool:
    for e in existing:
        if (
            e.client_id == candidate.client_id
            and abs((e.start_date - candidate.start_date).total_seconds()) < DUPLICATE_TIME_TOLERANCE_SECONDS
            and abs((e.end_date - candidate.end_date).total_seconds()) < DUPLICATE_TIME_TOLERANCE_SECONDS
            and abs(e.hourly_rate - candidate.hourly_rate) < DUPLICATE_RATE_TOLERANCE
            and (e.note or "") == (candidate.note or "")
        ):
            return True
    return False


class ImportService:
    """
    Imports work entries from CSV (the format ExportService.entries_csv writes).
    Imported entries are always fresh: no invoice link, no edit audit.
    """

    def __init__(self, clients: ClientService, entries: EntryService):
        self.clients = clients
        self.entries = entries

    def import_csv(self, text: str) -> ImportResult:
        result = ImportResult()
        reader = csv.reader(io.StringIO((text or "").lstrip("\ufeff")))
        try:
            header = next(reader)
        except StopIteration:
            return result
        except csv.Error as e:
            logger.warning("CSV import: unreadable header (%s)", e)
            return result

        cols = _header_index(header)
        missing = [c for c in REQUIRED_COLUMNS if c.casefold() not in cols]
        if missing:
            logger.warning("CSV import: unexpected format, missing columns %s", ", ".join(missing))
            return result

        known: List[WorkEntry] = self.entries.list_entries()
        fresh: List[WorkEntry] = []
        unparsable = 0
        line_no = 1

        while True:
            line_no += 1
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                # the reader drops the offending line and resumes on the next one
                unparsable += 1
                logger.debug("CSV import: skipped row %d (%s)", line_no, e)
                continue

            try:
                parsed = parse_row(row, cols, line_no)
            except UnparsableImportRow as e:
                unparsable += 1
                logger.debug("CSV import: skipped %s", e)
                continue

            existed = self.clients.find_by_name(parsed.client_name) is not None
            client = self.clients.get_or_create(parsed.client_name, parsed.hourly_rate)
            if not existed:
                result.created_client_count += 1

            entry = WorkEntry(
                client_id=client.id,
                start_date=parsed.start_date,
                end_date=parsed.end_date,
                hourly_rate=parsed.hourly_rate,
                note=parsed.note,
            )
            if is_duplicate(entry, known):
                result.skipped_duplicate_count += 1
                continue

            known.append(entry)
            fresh.append(entry)
            result.imported_count += 1

        # clients are already saved by get_or_create
        if fresh:
            self.entries.add_entries(fresh)

        logger.info(
            "CSV import: %d imported, %d duplicates skipped, %d clients created, %d rows unreadable",
            result.imported_count, result.skipped_duplicate_count,
            result.created_client_count, unparsable,
        )
        return result
