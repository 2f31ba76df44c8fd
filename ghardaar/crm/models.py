"""CRM client records, classification options, filters and stats."""

from dataclasses import asdict, dataclass, fields
from datetime import date
from typing import Any


@dataclass
class Option:
    value: str
    label: str
    color: str


LEAD_STAGE_OPTIONS = [
    Option("follow_up_req", "Follow Up Required", "#f59e0b"),
    Option("dnp", "DNP", "#6366f1"),
    Option("disqualified", "Disqualified", "#ef4444"),
    Option("callback_later", "CB after 2-3 Months", "#8b5cf6"),
]

LEAD_TYPE_OPTIONS = [
    Option("hot", "Hot", "#ef4444"),
    Option("warm", "Warm", "#f59e0b"),
    Option("cold", "Cold", "#3b82f6"),
]

DEAL_STATUS_OPTIONS = [
    Option("open", "Open", "#f59e0b"),
    Option("locked", "Deal Locked", "#22c55e"),
    Option("lost", "Lost", "#6b7280"),
]

# Enumerated fields commit as soon as a new option is picked
SELECT_FIELDS: dict[str, list[Option]] = {
    "lead_stage": LEAD_STAGE_OPTIONS,
    "lead_type": LEAD_TYPE_OPTIONS,
    "deal_status": DEAL_STATUS_OPTIONS,
}
# Free-text and date fields commit on blur or Enter
TEXT_FIELDS = frozenset({"client_name", "customer_number", "location_category", "calling_comment", "admin_notes"})
DATE_FIELDS = frozenset({"expected_visit_date"})
EDITABLE_FIELDS = frozenset(SELECT_FIELDS) | TEXT_FIELDS | DATE_FIELDS


@dataclass
class CRMClient:
    id: str
    client_name: str
    customer_number: str | None = None
    lead_stage: str = "follow_up_req"
    lead_type: str = "warm"
    location_category: str | None = None
    calling_comment: str | None = None
    expected_visit_date: str | None = None
    deal_status: str = "open"
    admin_notes: str | None = None
    sheet_id: str | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CRMClient":
        """Build from a table row, ignoring columns this model does not carry."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def validate_field_value(field: str, value: str | None) -> str | None:
    """Return an error message when value is not acceptable for field, else None."""
    if field not in EDITABLE_FIELDS:
        return f"Field '{field}' cannot be edited"
    if field in SELECT_FIELDS:
        allowed = [o.value for o in SELECT_FIELDS[field]]
        if value not in allowed:
            return f"Invalid value for {field}. Must be one of: {', '.join(allowed)}"
    elif field in DATE_FIELDS and value:
        try:
            date.fromisoformat(value)
        except ValueError:
            return f"Invalid date for {field}. Expected YYYY-MM-DD"
    elif field == "client_name" and not (value or "").strip():
        return "Client name cannot be empty"
    return None


@dataclass
class ClientFilters:
    search: str = ""
    lead_stage: str = ""
    lead_type: str = ""
    deal_status: str = ""
    location_category: str = ""

    def matches(self, client: CRMClient) -> bool:
        if self.search:
            needle = self.search.lower()
            if not (
                needle in client.client_name.lower()
                or (client.customer_number and self.search in client.customer_number)
                or (client.calling_comment and needle in client.calling_comment.lower())
            ):
                return False
        if self.lead_stage and client.lead_stage != self.lead_stage:
            return False
        if self.lead_type and client.lead_type != self.lead_type:
            return False
        if self.deal_status and client.deal_status != self.deal_status:
            return False
        if self.location_category:
            location = (client.location_category or "").lower()
            if not client.location_category or self.location_category.lower() not in location:
                return False
        return True


def compute_stats(clients: list[CRMClient]) -> dict[str, int]:
    return {
        "total": len(clients),
        "hot": sum(1 for c in clients if c.lead_type == "hot"),
        "warm": sum(1 for c in clients if c.lead_type == "warm"),
        "cold": sum(1 for c in clients if c.lead_type == "cold"),
        "locked": sum(1 for c in clients if c.deal_status == "locked"),
    }


def unique_locations(clients: list[CRMClient]) -> list[str]:
    """Distinct non-empty location categories in first-seen order."""
    seen: dict[str, None] = {}
    for client in clients:
        if client.location_category:
            seen.setdefault(client.location_category, None)
    return list(seen)
