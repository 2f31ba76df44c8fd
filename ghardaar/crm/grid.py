"""Inline-editable CRM client grid with optimistic updates and live reconciliation.

The grid keeps a newest-first cache of the clients of one sheet. Two
sources mutate it:

- local edits, applied to the cache immediately and then sent to the
  backend as a single-field update;
- change-feed events (insert / update / delete) pushed by the backend.

An update event replaces the whole cached row for its id, in arrival
order. There is no per-field merge and no timestamp comparison: a late
echo of a local edit can overwrite a newer edit from another session and
vice versa. At quiescence the cache matches the rows of the selected
sheet, and an id never appears twice.

Each edited cell carries a status (synced / pending / failed). A failed
commit keeps the optimistic value on screen, flagged as failed, until the
user reverts it, a change event corrects it, or the sheet is reloaded.
"""

from collections.abc import Callable
from dataclasses import dataclass

from ghardaar.backend.base import Backend, BackendError, ChangeEvent, Subscription
from ghardaar.crm.models import (
    DATE_FIELDS,
    EDITABLE_FIELDS,
    SELECT_FIELDS,
    TEXT_FIELDS,
    ClientFilters,
    CRMClient,
    compute_stats,
    unique_locations,
)
from ghardaar.logging.audit import get_audit_logger

CLIENTS_TABLE = "crm_clients"

SYNCED = "synced"
PENDING = "pending"
FAILED = "failed"

UPDATE_FAILED_MESSAGE = "Failed to update. Please try again."
LOAD_FAILED_MESSAGE = "Failed to load clients."


@dataclass(frozen=True)
class EditingCell:
    client_id: str
    field: str


@dataclass(frozen=True)
class CellState:
    status: str
    value: str | None


class ClientGrid:
    """Client-side state of the staff CRM table for one selected sheet."""

    def __init__(
        self,
        backend: Backend,
        notify: Callable[[str], None] | None = None,
        table: str = CLIENTS_TABLE,
    ):
        self._backend = backend
        self._notify = notify or (lambda message: None)
        self._table = table
        self._subscription: Subscription | None = None

        self.sheet_id: str | None = None
        self.clients: list[CRMClient] = []
        self.loading = False

        self.editing: EditingCell | None = None
        self.buffer = ""

        self._states: dict[tuple[str, str], CellState] = {}
        self._before_commit: dict[tuple[str, str], str | None] = {}
        self._commit_seq: dict[tuple[str, str], int] = {}

    # --- loading / subscription ---

    async def load(self, sheet_id: str | None) -> None:
        """Fetch the clients of sheet_id, newest first, replacing the cache."""
        self.sheet_id = sheet_id
        self.cancel_editing()
        self._states.clear()
        self._before_commit.clear()

        if not sheet_id:
            self.clients = []
            self.loading = False
            return

        self.loading = True
        try:
            rows = await self._backend.select(
                self._table, {"sheet_id": sheet_id}, order="created_at", descending=True
            )
        except BackendError as e:
            get_audit_logger().error(
                "Error fetching clients",
                extra={"audit_data": {"sheet_id": sheet_id, "error": e.message}},
            )
            if self.sheet_id == sheet_id:
                self.clients = []
                self.loading = False
                self._notify(LOAD_FAILED_MESSAGE)
            return

        # Another sheet was selected while this query was in flight
        if self.sheet_id != sheet_id:
            return
        self.clients = [CRMClient.from_row(r) for r in rows]
        self.loading = False

    async def subscribe(self) -> None:
        """Start applying change-feed events for the clients table."""
        if self._subscription is None:
            self._subscription = await self._backend.subscribe(self._table, self.apply_change)

    async def unsubscribe(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None

    # --- queries ---

    def _find(self, client_id: str) -> CRMClient | None:
        for client in self.clients:
            if client.id == client_id:
                return client
        return None

    def visible(self, filters: ClientFilters | None = None) -> list[CRMClient]:
        if filters is None:
            return list(self.clients)
        return [c for c in self.clients if filters.matches(c)]

    def stats(self) -> dict[str, int]:
        return compute_stats(self.clients)

    def locations(self) -> list[str]:
        return unique_locations(self.clients)

    def cell_state(self, client_id: str, field: str) -> CellState:
        state = self._states.get((client_id, field))
        if state is not None:
            return state
        client = self._find(client_id)
        return CellState(SYNCED, getattr(client, field) if client else None)

    # --- edit state machine ---

    def start_editing(self, client_id: str, field: str) -> None:
        """Enter edit mode on one cell. Any other cell in edit mode is dropped."""
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field}' is not editable")
        client = self._find(client_id)
        if client is None:
            raise ValueError(f"Unknown client: {client_id}")
        self.editing = EditingCell(client_id, field)
        self.buffer = getattr(client, field) or ""

    def cancel_editing(self) -> None:
        self.editing = None
        self.buffer = ""

    def set_buffer(self, text: str) -> None:
        if self.editing is not None:
            self.buffer = text

    async def select_value(self, value: str) -> bool:
        """Picking an option (or a date) commits right away."""
        cell = self.editing
        if cell is None or cell.field not in SELECT_FIELDS and cell.field not in DATE_FIELDS:
            return False
        return await self.commit(cell.client_id, cell.field, value)

    async def key(self, name: str) -> bool:
        """Enter commits the text buffer, Escape cancels. Returns True on a successful save."""
        cell = self.editing
        if cell is None:
            return False
        if name == "Escape":
            self.cancel_editing()
            return False
        if name == "Enter" and (cell.field in TEXT_FIELDS or cell.field in DATE_FIELDS):
            return await self.commit(cell.client_id, cell.field, self.buffer)
        return False

    async def blur(self) -> bool:
        """Leaving a text cell saves a changed buffer; anything else just closes the editor."""
        cell = self.editing
        if cell is None:
            return False
        if cell.field in SELECT_FIELDS:
            self.cancel_editing()
            return False
        client = self._find(cell.client_id)
        current = (getattr(client, cell.field) if client else None) or ""
        if self.buffer == current:
            self.cancel_editing()
            return False
        return await self.commit(cell.client_id, cell.field, self.buffer)

    async def commit(self, client_id: str, field: str, value: str) -> bool:
        """Optimistically apply value to the cache, then persist it.

        Blank values are stored as None. Returns True when the backend
        accepted the update.
        """
        stored = value or None
        key = (client_id, field)
        client = self._find(client_id)

        if client is not None:
            previous_state = self._states.get(key)
            if previous_state is None or previous_state.status == SYNCED:
                self._before_commit[key] = getattr(client, field)
            setattr(client, field, stored)

        seq = self._commit_seq.get(key, 0) + 1
        self._commit_seq[key] = seq
        self._states[key] = CellState(PENDING, stored)
        self.cancel_editing()

        try:
            await self._backend.update(self._table, {field: stored}, {"id": client_id})
        except BackendError as e:
            get_audit_logger().error(
                "Error updating field",
                extra={"audit_data": {"client_id": client_id, "field": field, "error": e.message}},
            )
            if self._commit_seq.get(key) == seq and key in self._states:
                self._states[key] = CellState(FAILED, stored)
            self._notify(UPDATE_FAILED_MESSAGE)
            return False

        # A newer commit to the same cell, or a change event, may have taken over
        if self._commit_seq.get(key) == seq and key in self._states:
            del self._states[key]
            self._before_commit.pop(key, None)
        return True

    def revert(self, client_id: str, field: str) -> bool:
        """Put back the value a failed commit replaced."""
        key = (client_id, field)
        state = self._states.get(key)
        if state is None or state.status != FAILED:
            return False
        client = self._find(client_id)
        if client is not None:
            setattr(client, field, self._before_commit.get(key))
        del self._states[key]
        self._before_commit.pop(key, None)
        return True

    # --- change feed ---

    def _forget_row(self, client_id: str) -> None:
        for key in [k for k in self._states if k[0] == client_id]:
            del self._states[key]
            self._before_commit.pop(key, None)
        if self.editing is not None and self.editing.client_id == client_id and self._find(client_id) is None:
            self.cancel_editing()

    def apply_change(self, event: ChangeEvent) -> None:
        """Reconcile the cache with one change-feed event."""
        if event.table != self._table or self.sheet_id is None:
            return

        if event.type == "insert":
            row = event.record
            if row.get("sheet_id") != self.sheet_id or self._find(row.get("id")) is not None:
                return
            self.clients.insert(0, CRMClient.from_row(row))

        elif event.type == "update":
            row = event.record
            client_id = row.get("id")
            index = next((i for i, c in enumerate(self.clients) if c.id == client_id), None)
            if index is None:
                return
            if "sheet_id" in row and row["sheet_id"] != self.sheet_id:
                del self.clients[index]
            else:
                self.clients[index] = CRMClient.from_row(row)
            self._forget_row(client_id)

        elif event.type == "delete":
            client_id = event.old_record.get("id") or event.record.get("id")
            self.clients = [c for c in self.clients if c.id != client_id]
            self._forget_row(client_id)
