from __future__ import annotations
from typing import Iterable, List, Optional
import logging

from timebill.config import CLIENTS_KEY, IMPORTED_CLIENT_NAME, UNKNOWN_CLIENT_NAME
from timebill.models.client import Client
from timebill.storage.json_repo import JsonStore, load_records, save_records

logger = logging.getLogger(__name__)


def _norm_name(name: str) -> str:
    return (name or "").strip().casefold()


class ClientService:
    def __init__(self, store: Optional[JsonStore] = None):
        self.store = store
        self._clients: List[Client] = load_records(store, CLIENTS_KEY, Client)

    def _save(self) -> None:
        save_records(self.store, CLIENTS_KEY, self._clients)

    def _index_of(self, client_id: str) -> int:
        for i, c in enumerate(self._clients):
            if c.id == client_id:
                return i
        return -1

    # ----------- CRUD/list -----------
    def list_clients(self) -> List[Client]:
        return [c.model_copy() for c in self._clients]

    def get_by_id(self, client_id: Optional[str]) -> Optional[Client]:
        if client_id is None:
            return None
        idx = self._index_of(client_id)
        if idx < 0:
            return None
        return self._clients[idx].model_copy()

    def add_client(self, name: str, hourly_rate: float) -> Client:
        # explicit add never merges with a same-name client
        client = Client(name=name, hourly_rate=hourly_rate)
        self._clients.append(client)
        self._save()
        return client.model_copy()

    def update_client(self, client: Client) -> Client:
        idx = self._index_of(client.id)
        if idx < 0:
            raise ValueError(f"Client with id={client.id} not found")
        self._clients[idx] = client.model_copy()
        self._save()
        return client

    def delete_clients(self, client_ids: Iterable[str]) -> int:
        """Remove clients. Their entries are left in place (no cascade)."""
        ids = set(client_ids)
        kept = [c for c in self._clients if c.id not in ids]
        removed = len(self._clients) - len(kept)
        if removed:
            self._clients = kept
            self._save()
        return removed

    # ----------- lookups -----------
    def find_by_name(self, name: str) -> Optional[Client]:
        wanted = _norm_name(name)
        for c in self._clients:
            if _norm_name(c.name) == wanted:
                return c.model_copy()
        return None

    def get_or_create(self, name: str, default_rate: float) -> Client:
        """Existing client wins: its rate is kept even if default_rate differs."""
        existing = self.find_by_name(name)
        if existing is not None:
            return existing
        trimmed = (name or "").strip()
        client = Client(name=trimmed or IMPORTED_CLIENT_NAME, hourly_rate=default_rate)
        self._clients.append(client)
        self._save()
        logger.info("Client '%s' created (rate %.2f)", client.name, client.hourly_rate)
        return client.model_copy()

    def client_name(self, client_id: Optional[str]) -> str:
        c = self.get_by_id(client_id)
        return c.name if c else UNKNOWN_CLIENT_NAME
