# Overview: Remote store boundary: results, change events and the abstract CRUD + change-feed API.

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ..errors import user_message


INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS = frozenset({INSERT, UPDATE, DELETE})

# Monotonic per-row revision stamped by the remote boundary
REVISION_FIELD = "version_id"


def revision_of(record: Mapping | None) -> int | None:
    if not record:
        return None
    value = record.get(REVISION_FIELD)
    return value if isinstance(value, int) else None


def matches(record: Mapping | None, filters: Mapping | None) -> bool:
    """
    Equality filter; a list/tuple/set value means "field IN values".
    """
    if not filters:
        return True
    if record is None:
        return False
    for name, expected in filters.items():
        value = record.get(name)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


@dataclass(frozen=True)
class ChangeEvent:
    """Row-level change pushed by a change feed."""
    table: str
    operation: str
    after: Mapping | None = None
    before: Mapping | None = None

    def record(self) -> Mapping | None:
        return self.after if self.after is not None else self.before

    def key(self, key_field: str = "id") -> Any:
        record = self.record()
        return record.get(key_field) if record else None

    def with_after(self, after: Mapping) -> "ChangeEvent":
        return ChangeEvent(table=self.table, operation=self.operation, after=after, before=self.before)


@dataclass(frozen=True)
class RemoteResult:
    """
    Outcome of a remote call. Remote calls never raise; they report.
    """
    ok: bool
    data: Any = None
    error: Exception | None = None

    @classmethod
    def success(cls, data: Any = None) -> "RemoteResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: Exception) -> "RemoteResult":
        return cls(ok=False, error=error)

    @property
    def message(self) -> str | None:
        return user_message(self.error)


@dataclass
class WriteRecord:
    """One remote write, as recorded by stores that keep a write log."""
    method: str
    table: str
    filters: Mapping = field(default_factory=dict)
    payload: Mapping = field(default_factory=dict)


class RemoteStore(ABC):
    """
    CRUD + change-feed capability over the merchant's remote tables.

    Created once at process start and passed to whatever needs it.
    """

    def __init__(self, hub=None):
        from .feed import ChangeFeedHub

        self.hub = hub or ChangeFeedHub()

    @abstractmethod
    async def fetch_all(
        self,
        table: str,
        filters: Mapping | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> RemoteResult:
        """data: list of row dicts."""

    @abstractmethod
    async def insert(self, table: str, record: Mapping) -> RemoteResult:
        """data: the inserted row."""

    @abstractmethod
    async def upsert(
        self,
        table: str,
        record: Mapping,
        conflict_key: str = "id",
        ignore_duplicates: bool = False,
    ) -> RemoteResult:
        """
        Insert, or update the row whose conflict_key matches. With
        ignore_duplicates an existing row is returned untouched.

        data: the resulting row.
        """

    @abstractmethod
    async def update(
        self,
        table: str,
        filters: Mapping,
        patch: Mapping,
        expected_revision: int | None = None,
    ) -> RemoteResult:
        """
        data: list of updated rows. Fails with NotFoundError when nothing
        matches and ConflictError when expected_revision is stale.
        """

    @abstractmethod
    async def delete(self, table: str, filters: Mapping) -> RemoteResult:
        """data: number of deleted rows."""

    def subscribe(self, table: str, filters: Mapping | None = None, event_types: Iterable[str] = ALL_EVENTS):
        """Returns an unopened ChangeFeedClient."""
        return self.hub.subscribe(table, filters, event_types)
