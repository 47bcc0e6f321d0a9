"""In-process row store implementing IRowStore."""
from typing import Dict, List, Optional

from ..errors import StoreError
from ..models import KEY_COLUMN


class MemoryRowStore:
    """
    Dict-backed row store keeping insertion order and a header.

    Useful for dry runs and tests; behaves like SheetsRowStore: only the
    given cells are written on upsert and unknown columns are appended to
    the header.
    """

    def __init__(self, rows: Optional[List[Dict[str, str]]] = None, key_column: str = KEY_COLUMN):
        self.key_column = key_column
        self.header: List[str] = [key_column]
        self._rows: Dict[str, Dict[str, str]] = {}
        if rows:
            for row in rows:
                self._add(dict(row))

    def _extend_header(self, columns) -> None:
        for column in columns:
            if column not in self.header:
                self.header.append(column)

    def _add(self, row: Dict[str, str]) -> None:
        key = str(row.get(self.key_column) or "")
        if not key:
            raise StoreError(f"Row without {self.key_column!r}: {row!r}")
        self._extend_header(row.keys())
        self._rows[key] = {k: str(v) for k, v in row.items()}

    async def get_all(self) -> Dict[str, Dict[str, str]]:
        return {key: dict(row) for key, row in self._rows.items()}

    async def get_by_key(self, key: str) -> Optional[Dict[str, str]]:
        row = self._rows.get(key)
        return dict(row) if row is not None else None

    async def upsert_by_key(self, key: str, values: Dict[str, str]) -> None:
        self._extend_header(values.keys())
        row = self._rows.setdefault(key, {self.key_column: key})
        row.update({k: str(v) for k, v in values.items()})

    async def append_rows(self, rows: List[Dict[str, str]]) -> None:
        for row in rows:
            self._add(dict(row))

    async def clear_all(self) -> None:
        self._rows.clear()

    def __len__(self) -> int:
        return len(self._rows)
