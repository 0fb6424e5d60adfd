import datetime as dt
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .config import Config, Settings
from .errors import NotFoundError, StoreError


@dataclass(frozen=True)
class Record:
    id: Any
    category: str
    image_url: Optional[str]
    updated_at: Optional[str]

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)


def _utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _parse_count(content_range: str) -> Optional[int]:
    # PostgREST sends "0-0/12", or "*/0" for an empty table.
    total = (content_range or "").rpartition("/")[2]
    return int(total) if total.isdigit() else None


class RecordStore:
    """PostgREST (Supabase) adapter for the vehicle table."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.table_url = f"{base_url.rstrip('/')}/rest/v1/{self.settings.table}"
        self.api_key = api_key
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Config, settings: Settings) -> "RecordStore":
        return cls(config.store_url, config.store_key, settings)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        params: Dict[str, str],
        json_body: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> requests.Response:
        try:
            resp = self.session.request(
                method,
                self.table_url,
                params=params,
                json=json_body,
                headers=self._headers(prefer),
                timeout=self.settings.store_timeout_s,
            )
        except requests.RequestException as e:
            raise StoreError(f"{method} {self.settings.table} failed: {e}")
        if resp.status_code >= 400:
            raise StoreError(
                f"{method} {self.settings.table} failed with status {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        return resp

    def _rows(self, resp: requests.Response) -> List[Dict[str, Any]]:
        try:
            rows = resp.json()
        except ValueError as e:
            raise StoreError(f"Unexpected store response: {e}; body={resp.text!r}")
        if not isinstance(rows, list):
            raise StoreError(f"Unexpected store response shape: {rows!r}")
        if not all(isinstance(r, dict) for r in rows):
            raise StoreError(f"Unexpected store row shape: {rows!r}")
        return rows

    def _to_record(self, row: Dict[str, Any]) -> Record:
        s = self.settings
        image = row.get(s.image_column)
        return Record(
            id=row.get(s.id_column),
            category=str(row.get(s.category_column) or ""),
            image_url=str(image) if image else None,
            updated_at=row.get(s.updated_at_column),
        )

    def _select(self, params: Dict[str, str]) -> List[Record]:
        resp = self._request("GET", {"select": "*", **params})
        return [self._to_record(r) for r in self._rows(resp)]

    def test_reachable(self) -> bool:
        print(" Testing database connection...")
        try:
            resp = self._request("GET", {"select": "*", "limit": "1"}, prefer="count=exact")
        except StoreError as e:
            print(f"[ERROR] Database connection failed: {e}", file=sys.stderr)
            return False
        count = _parse_count(resp.headers.get("Content-Range", ""))
        print("[OK] Database connection successful!")
        print(f" Found {count or 0} record(s) in '{self.settings.table}'")
        return True

    def fetch_all(self) -> List[Record]:
        return self._select({"order": f"{self.settings.id_column}.asc"})

    def fetch_missing_image(self) -> List[Record]:
        return self._select({self.settings.image_column: "is.null"})

    def fetch_one(self, record_id: Any) -> Record:
        records = self._select({self.settings.id_column: f"eq.{record_id}", "limit": "1"})
        if not records:
            raise NotFoundError(record_id)
        return records[0]

    def update_image(self, record_id: Any, image_url: str, force_overwrite: bool = False) -> bool:
        """Write image_url to the record; returns False when an existing image was kept.

        The existence check and the write are separate requests, so concurrent
        writers can race. One sequential caller is assumed.
        """
        current = self.fetch_one(record_id)
        if current.has_image and not force_overwrite:
            print(f"[SKIP] Record {record_id} already has an image, not overwriting")
            return False

        s = self.settings
        resp = self._request(
            "PATCH",
            {s.id_column: f"eq.{record_id}"},
            json_body={s.image_column: image_url, s.updated_at_column: _utc_now_iso()},
            prefer="return=representation",
        )
        if not self._rows(resp):
            raise NotFoundError(record_id)
        print(f" Database updated for record ID: {record_id}")
        return True
