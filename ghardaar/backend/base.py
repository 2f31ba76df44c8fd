"""Abstract interface to the managed backend (tables, change feed, auth admin).

Filters are plain column -> value mappings; a list or tuple value means
"column IN values". Every failure surfaces as BackendError.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

Row = dict[str, Any]
Filters = Mapping[str, Any]

# Postgres "undefined_table"
UNDEFINED_TABLE = "42P01"


class BackendError(Exception):
    """A query, mutation or auth call against the backend failed."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass
class AuthUser:
    id: str
    email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChangeEvent:
    """One row-level notification from the change feed."""

    type: str  # "insert" | "update" | "delete"
    table: str
    record: Row = field(default_factory=dict)      # new row (insert/update)
    old_record: Row = field(default_factory=dict)  # previous row (delete carries at least the id)


ChangeCallback = Callable[[ChangeEvent], Awaitable[None] | None]


class Subscription(ABC):
    """Handle for a live change-feed subscription."""

    @abstractmethod
    async def unsubscribe(self) -> None:
        ...


class Backend(ABC):
    """Base class for backend implementations."""

    # --- tables ---

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order: str | None = None,
        descending: bool = False,
        columns: str = "*",
    ) -> list[Row]:
        ...

    async def select_one(self, table: str, filters: Filters, columns: str = "*") -> Row | None:
        """First matching row or None."""
        rows = await self.select(table, filters, columns=columns)
        return rows[0] if rows else None

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert one row and return it as stored."""
        ...

    @abstractmethod
    async def update(self, table: str, values: Row, filters: Filters) -> list[Row]:
        ...

    @abstractmethod
    async def delete(self, table: str, filters: Filters) -> None:
        ...

    @abstractmethod
    async def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        """Deliver every insert/update/delete on table to callback.

        No server-side filtering: consumers discard events they do not want.
        """
        ...

    # --- auth ---

    @abstractmethod
    async def get_user(self, token: str) -> AuthUser | None:
        """Resolve an access token to its user, or None if it is not valid."""
        ...

    @abstractmethod
    async def create_user(self, email: str, password: str, metadata: dict | None = None) -> AuthUser:
        """Create a user with the email already confirmed."""
        ...

    @abstractmethod
    async def update_user(self, user_id: str, attributes: dict) -> None:
        ...

    @abstractmethod
    async def delete_user(self, user_id: str) -> None:
        ...

    @abstractmethod
    async def list_users(self) -> list[AuthUser]:
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if the backend holds connections."""
        pass
