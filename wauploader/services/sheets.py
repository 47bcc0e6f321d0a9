"""
Sheets Row Store - key-value rows over one Google Sheets tab.

The first row of the tab is the header and defines the columns. Rows are
exposed as {column: cell text} dicts keyed by the key column. Only the
cells a caller passes are ever written; other columns are left alone.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from ..errors import StoreError, TransferError
from ..models import KEY_COLUMN
from .api_client import GoogleAPIClient

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
MAX_SHEET_TITLE = 100
_INVALID_TITLE_CHARS = re.compile(r"[\[\]\*\?/\\:]")


# --- A1 notation helpers -------------------------------------------------

def column_letter(index: int) -> str:
    """1-based column index to letters: 1 -> A, 27 -> AA."""
    if index < 1:
        raise ValueError(f"Column index must be >= 1, got {index}")
    letters = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def quote_sheet(title: str) -> str:
    """Quote a tab title for use in an A1 range."""
    return "'" + title.replace("'", "''") + "'"


def a1_range(
    title: str,
    start_col: int,
    start_row: int,
    end_col: Optional[int] = None,
    end_row: Optional[int] = None,
) -> str:
    """
    Build an A1 range such as 'Tab'!A2:G or 'Tab'!C5.

    end_row=None with end_col set gives an open-ended range down the sheet.
    """
    start = f"{column_letter(start_col)}{start_row}"
    if end_col is None:
        return f"{quote_sheet(title)}!{start}"
    end = column_letter(end_col) + (str(end_row) if end_row is not None else "")
    return f"{quote_sheet(title)}!{start}:{end}"


def sheet_title(name: str) -> str:
    """Make a valid tab title from a channel name."""
    title = _INVALID_TITLE_CHARS.sub("_", name or "").strip().strip("'")
    return title[:MAX_SHEET_TITLE] or "untitled"


class SheetsRowStore:
    """
    Row store over one tab of a spreadsheet.

    Implements IRowStore. Every read goes to the API; nothing is cached
    between calls apart from the header of the last read, because the sheet
    may be edited by people while a run is in progress.
    """

    def __init__(
        self,
        api: GoogleAPIClient,
        spreadsheet_id: str,
        sheet_name: str,
        key_column: str = KEY_COLUMN,
        initial_columns: Iterable[str] = (),
    ):
        self._api = api
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.key_column = key_column
        self._initial_columns = list(initial_columns) or [key_column]
        self.header: List[str] = []

    @property
    def _base(self) -> str:
        return f"{SHEETS_API}/{self.spreadsheet_id}"

    def _values_url(self, a1: str, suffix: str = "") -> str:
        return f"{self._base}/values/{quote(a1, safe='')}{suffix}"

    async def _call(self, method: str, url: str, **kwargs):
        try:
            return await self._api.request(method, url, **kwargs)
        except TransferError as e:
            raise StoreError(f"Sheets request failed for '{self.sheet_name}': {e.message}") from e

    async def _call_json(self, method: str, url: str, **kwargs) -> dict:
        response = await self._call(method, url, **kwargs)
        try:
            payload = response.json()
        except ValueError as e:
            raise StoreError(f"Sheets returned a non-JSON body for '{self.sheet_name}'") from e
        if not isinstance(payload, dict):
            raise StoreError(f"Sheets returned an unexpected body for '{self.sheet_name}'")
        return payload

    async def ensure_sheet(self) -> None:
        """Create the tab and its header row if they do not exist yet."""
        metadata = await self._call_json("GET", self._base, params={"fields": "sheets.properties.title"})
        titles = [s.get("properties", {}).get("title") for s in metadata.get("sheets", [])]
        if self.sheet_name not in titles:
            await self._call("POST", f"{self._base}:batchUpdate", json={
                "requests": [{"addSheet": {"properties": {"title": self.sheet_name}}}]
            })
            logger.info("Created sheet tab '%s'", self.sheet_name)

        rows = await self._read_rows()
        if not rows or not any(rows[0]):
            await self._write_header(self._initial_columns)

    async def _read_rows(self) -> List[List[str]]:
        payload = await self._call_json("GET", self._values_url(quote_sheet(self.sheet_name)))
        return payload.get("values", [])

    async def _write_header(self, columns: List[str]) -> None:
        await self._call(
            "PUT",
            self._values_url(a1_range(self.sheet_name, 1, 1, len(columns), 1)),
            params={"valueInputOption": "RAW"},
            json={"values": [columns]},
        )
        self.header = list(columns)

    async def _load(self) -> Tuple[Dict[str, Dict[str, str]], Dict[str, int]]:
        """Read the tab; return rows by key and 1-based sheet row numbers."""
        rows = await self._read_rows()
        self.header = [str(c) for c in rows[0]] if rows else []
        if rows and self.key_column not in self.header:
            raise StoreError(f"Sheet '{self.sheet_name}' has no '{self.key_column}' column")

        by_key: Dict[str, Dict[str, str]] = {}
        row_numbers: Dict[str, int] = {}
        for offset, values in enumerate(rows[1:], start=2):
            cells = {col: (str(values[i]) if i < len(values) else "") for i, col in enumerate(self.header)}
            key = cells.get(self.key_column, "")
            if not key:
                continue
            if key in by_key:
                logger.warning("Duplicate key %r in sheet '%s' (row %d ignored)", key, self.sheet_name, offset)
                continue
            by_key[key] = cells
            row_numbers[key] = offset
        return by_key, row_numbers

    async def _ensure_columns(self, columns: Iterable[str]) -> None:
        missing = [c for c in columns if c not in self.header]
        if not missing:
            return
        header = self.header or [self.key_column]
        header = header + [c for c in missing if c not in header]
        logger.debug("Adding columns %s to sheet '%s'", missing, self.sheet_name)
        await self._write_header(header)

    async def get_all(self) -> Dict[str, Dict[str, str]]:
        by_key, _ = await self._load()
        return by_key

    async def get_by_key(self, key: str) -> Optional[Dict[str, str]]:
        by_key, _ = await self._load()
        return by_key.get(key)

    async def upsert_by_key(self, key: str, values: Dict[str, str]) -> None:
        by_key, row_numbers = await self._load()
        await self._ensure_columns([self.key_column, *values.keys()])

        row_number = row_numbers.get(key)
        if row_number is None:
            await self.append_rows([{self.key_column: key, **values}])
            return

        # One value range per cell so neighbouring columns are never touched
        data = [
            {
                "range": a1_range(self.sheet_name, self.header.index(column) + 1, row_number),
                "values": [[str(value)]],
            }
            for column, value in values.items()
        ]
        await self._call("POST", f"{self._base}/values:batchUpdate", json={
            "valueInputOption": "RAW",
            "data": data,
        })

    async def append_rows(self, rows: List[Dict[str, str]]) -> None:
        if not rows:
            return
        if not self.header:
            await self._load()
        columns: List[str] = []
        for row in rows:
            columns.extend(c for c in row if c not in columns)
        await self._ensure_columns([self.key_column, *columns])

        values = [[str(row.get(col, "")) for col in self.header] for row in rows]
        await self._call(
            "POST",
            self._values_url(a1_range(self.sheet_name, 1, 1, len(self.header)), ":append"),
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": values},
        )

    async def clear_all(self) -> None:
        if not self.header:
            await self._load()
        last_col = max(len(self.header), 1)
        await self._call("POST", self._values_url(a1_range(self.sheet_name, 1, 2, last_col), ":clear"))
