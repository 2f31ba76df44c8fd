"""Append signups and property listings to a Google Sheets spreadsheet.

gspread is synchronous; every call runs in a worker thread so the event
loop never blocks on the Sheets API.
"""

import asyncio
from dataclasses import dataclass

import gspread

from ghardaar.config.settings import get_settings
from ghardaar.logging.audit import get_audit_logger

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"

SIGNUP_SHEET = "User Signups"
SIGNUP_HEADERS = ["Timestamp", "Name", "Email", "Phone"]

PROPERTY_SHEET = "Property Listings"
PROPERTY_HEADERS = [
    "Timestamp",
    "Title",
    "Property Type",
    "Listing Type",
    "Price",
    "Location",
    "Owner Name",
    "Owner Phone",
    "Owner Email",
]


class SheetsNotConfigured(Exception):
    pass


@dataclass
class SignupRow:
    name: str
    email: str
    phone: str
    timestamp: str = ""

    def values(self) -> list[str]:
        return [self.timestamp, self.name, self.email, self.phone]


@dataclass
class PropertyRow:
    title: str
    property_type: str
    listing_type: str = ""
    price: str = ""
    location: str = ""
    owner_name: str = ""
    owner_phone: str = ""
    owner_email: str = ""
    timestamp: str = ""

    def values(self) -> list[str]:
        return [
            self.timestamp,
            self.title,
            self.property_type,
            self.listing_type,
            self.price,
            self.location,
            self.owner_name,
            self.owner_phone,
            self.owner_email,
        ]


class SheetsLogger:
    """Service-account backed writer for one spreadsheet."""

    def __init__(self, client_email: str, private_key: str, spreadsheet_id: str):
        if not (client_email and private_key and spreadsheet_id):
            raise SheetsNotConfigured("Google Sheets credentials not configured")
        self._client_email = client_email
        self._private_key = private_key
        self._spreadsheet_id = spreadsheet_id
        self._spreadsheet: gspread.Spreadsheet | None = None

    def _open(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            client = gspread.service_account_from_dict(
                {
                    "type": "service_account",
                    "client_email": self._client_email,
                    "private_key": self._private_key,
                    "token_uri": TOKEN_URI,
                },
                scopes=SCOPES,
            )
            self._spreadsheet = client.open_by_key(self._spreadsheet_id)
        return self._spreadsheet

    def _ensure_worksheet(self, title: str, headers: list[str]) -> None:
        """Create the worksheet with a header row when it does not exist yet.

        Failures here are logged only; the append that follows reports the
        real error if the sheet is unusable.
        """
        try:
            spreadsheet = self._open()
            if any(ws.title == title for ws in spreadsheet.worksheets()):
                return
            worksheet = spreadsheet.add_worksheet(title=title, rows=1000, cols=len(headers))
            worksheet.append_row(headers, value_input_option="RAW")
        except gspread.exceptions.GSpreadException as e:
            get_audit_logger().warning(
                "Error ensuring sheet exists",
                extra={"audit_data": {"sheet": title, "error": str(e)}},
            )

    def _append(self, title: str, headers: list[str], values: list[str]) -> None:
        self._ensure_worksheet(title, headers)
        worksheet = self._open().worksheet(title)
        worksheet.append_row(values, value_input_option="RAW", insert_data_option="INSERT_ROWS")

    async def append_user_signup(self, row: SignupRow) -> None:
        await asyncio.to_thread(self._append, SIGNUP_SHEET, SIGNUP_HEADERS, row.values())

    async def append_property_listing(self, row: PropertyRow) -> None:
        await asyncio.to_thread(self._append, PROPERTY_SHEET, PROPERTY_HEADERS, row.values())


_logger: SheetsLogger | None = None


def get_sheets_logger() -> SheetsLogger:
    """Singleton built from settings. Raises SheetsNotConfigured when credentials are missing."""
    global _logger
    if _logger is None:
        settings = get_settings()
        _logger = SheetsLogger(
            settings.google_sheets_client_email,
            settings.sheets_private_key,
            settings.google_sheets_spreadsheet_id,
        )
    return _logger
