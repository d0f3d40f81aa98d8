from __future__ import annotations

import glob
import json
import logging
import shutil
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from timebill.services.errors import PersistenceFailure

logger = logging.getLogger(__name__)

Payload = Union[List[Any], Dict[str, Any]]
M = TypeVar("M", bound=BaseModel)


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    raise TypeError(f"Object of type {o.__class__.__name__} is not JSON serializable")


class JsonStore:
    """
    Persistence sink: one JSON file per logical collection key.
    - Backup rotation (backup_enabled, backup_keep)
    - Does not write when content is unchanged (less noise and fewer .bak)
    - Corrupt file -> copied aside, load() returns None
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    # ---------------- Load ---------------- #

    def load(self, key: str) -> Optional[Payload]:
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Corrupt data file %s (%s), starting from empty state", path, e)
            try:
                shutil.copy2(path, path.with_suffix(".corrupt.json"))
            except OSError:
                logger.exception("Could not keep a copy of corrupt file %s", path)
            return None
        except OSError as e:
            logger.warning("Cannot read %s (%s), starting from empty state", path, e)
            return None
        if not isinstance(data, (list, dict)):
            logger.warning("Unexpected payload in %s (%s), ignored", path, type(data).__name__)
            return None
        return data

    # ---------------- Save ---------------- #

    def _rotate_backups(self, path: Path) -> None:
        if self.backup_keep <= 0:
            return
        pattern = str(path.with_suffix(".*.bak.json"))
        files = sorted(glob.glob(pattern))
        # keep the most recent ones
        if len(files) > self.backup_keep:
            for old in files[: len(files) - self.backup_keep]:
                Path(old).unlink(missing_ok=True)

    @staticmethod
    def _read_current(path: Path) -> Optional[str]:
        # undecodable content counts as changed, so it gets replaced
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return None

    def save(self, key: str, data: Payload) -> None:
        path = self.path_for(key)
        try:
            new_dump = json.dumps(data, ensure_ascii=False, indent=2, default=_json_default)
            path.parent.mkdir(parents=True, exist_ok=True)

            if path.exists():
                if self._read_current(path) == new_dump:
                    return
                if self.backup_enabled:
                    ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
                    shutil.copy2(path, path.with_suffix(f".{ts}.bak.json"))
                    self._rotate_backups(path)

            with path.open("w", encoding="utf-8") as f:
                f.write(new_dump)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(key, e) from e


# ---------------- Helpers (models <-> collections) ---------------- #

def load_records(store: Optional[JsonStore], key: str, model: Type[M]) -> List[M]:
    """Hydrate a collection; invalid records are skipped, never fatal."""
    if store is None:
        return []
    raw = store.load(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("Collection '%s' is not a list, starting empty", key)
        return []
    out: List[M] = []
    for d in raw:
        try:
            out.append(model.model_validate(d))
        except ValidationError as e:
            logger.warning("Skipping invalid %s record in '%s': %s", model.__name__, key, e)
            continue
    return out


def save_records(store: Optional[JsonStore], key: str, items: Iterable[BaseModel]) -> bool:
    """Best-effort save after a mutation. Failures are logged, never raised."""
    if store is None:
        return True
    try:
        store.save(key, [it.model_dump(mode="json") for it in items])
    except PersistenceFailure as e:
        logger.error("Persistence failure (in-memory state kept): %s", e)
        return False
    return True
