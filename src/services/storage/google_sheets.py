"""
Google Sheets Remote Store

DESIGN DECISION: Google Sheets holds the remote replica because:
1. The tutor can see (and back up) their data without any server
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. One row per user is all the reconciliation engine needs

TRADEOFFS:
- A cell holds at most 50,000 characters, which bounds the payload size
- No transactions: two devices pushing at once overwrite each other
  (the next sync's merge re-unions by id, so nothing is lost for good)
- Lookups scan the sheet in Python (fine for a handful of users)

The implementation follows RemoteStoreInterface, so the orchestrator does not
know which backend it is talking to.
"""

import asyncio
import json
from typing import Any, Callable, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    Retrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import GoogleSheetsSettings, SyncSettings, get_settings
from src.models.state import CanonicalState, RemoteRecord
from src.services.auth import IdentityProvider
from src.services.storage.interface import RemoteStoreInterface, SyncUnavailableError
from src.validation import to_timestamp


# Column layout of the Replicas sheet
REPLICA_COLUMNS = [
    "user_id",
    "payload",
    "updated_at",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily opens the replicas worksheet.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise SyncUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise SyncUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise SyncUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_replicas_sheet(self) -> gspread.Worksheet:
        """Get or create the Replicas worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.replicas_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.replicas_sheet_name,
                rows=100,
                cols=len(REPLICA_COLUMNS),
            )
            sheet.append_row(REPLICA_COLUMNS)
        return sheet


class GoogleSheetsRemoteStore(RemoteStoreInterface):
    """
    Google Sheets implementation of the remote replica.

    Each user owns exactly one row: user id, JSON payload, ISO timestamp.
    gspread is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        client: Optional[GoogleSheetsClient] = None,
        sync_settings: Optional[SyncSettings] = None,
    ):
        self._identity = identity
        self._client = client or GoogleSheetsClient()
        self._sync_settings = sync_settings or get_settings().sync

    def _retrying(self) -> Retrying:
        # Configuration errors such as a missing spreadsheet are not retried
        return Retrying(
            retry=retry_if_not_exception_type(SyncUnavailableError),
            stop=stop_after_attempt(self._sync_settings.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=0,
                max=self._sync_settings.retry_max_wait_seconds,
            ),
            reraise=True,
        )

    async def _run(self, stage: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking sheet operation off the event loop, with retries."""
        try:
            return await asyncio.to_thread(self._retrying(), fn, *args)
        except SyncUnavailableError:
            raise
        except Exception as e:
            raise SyncUnavailableError(f"Failed to {stage} remote record: {e}") from e

    @staticmethod
    def _find_row(rows: list[list[str]], owner: str) -> Optional[int]:
        """1-based sheet row index of the owner's record (row 1 is the header)."""
        for idx, row in enumerate(rows[1:], start=2):
            if row and row[0] == owner:
                return idx
        return None

    def _row_to_record(self, row: list[str]) -> RemoteRecord:
        """Convert a spreadsheet row to a RemoteRecord."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        try:
            payload = json.loads(safe_get(1, "{}"))
        except json.JSONDecodeError:
            # Unreadable payload counts as an empty record; normalization
            # and the "has data" checks decide what happens next.
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        return RemoteRecord(
            owner=safe_get(0),
            payload=payload,
            updated_at=to_timestamp(safe_get(2)),
        )

    def _fetch_blocking(self, owner: str) -> Optional[RemoteRecord]:
        sheet = self._client.get_replicas_sheet()
        rows = sheet.get_all_values()
        idx = self._find_row(rows, owner)
        if idx is None:
            return None
        return self._row_to_record(rows[idx - 1])

    def _push_blocking(self, owner: str, state: CanonicalState) -> None:
        sheet = self._client.get_replicas_sheet()
        values = [
            owner,
            json.dumps(state.to_document()),
            state.updated_at.isoformat(),
        ]
        idx = self._find_row(sheet.get_all_values(), owner)
        if idx is None:
            sheet.append_row(values, value_input_option="RAW")
        else:
            sheet.update(
                range_name=f"A{idx}:C{idx}",
                values=[values],
                value_input_option="RAW",
            )

    async def fetch_remote(self) -> Optional[RemoteRecord]:
        """Fetch the signed-in user's row, or None."""
        owner = self._identity.current_identity()
        if owner is None:
            return None
        return await self._run("fetch", self._fetch_blocking, owner)

    async def push_remote(self, state: CanonicalState) -> None:
        """Insert or overwrite the signed-in user's row."""
        owner = self._identity.current_identity()
        if owner is None:
            raise SyncUnavailableError("Not signed in")
        await self._run("push", self._push_blocking, owner, state)
