# Overview: Keyed in-memory cache of one entity collection with immutable snapshots.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from ..remote.base import REVISION_FIELD, revision_of


logger = logging.getLogger(__name__)

# StoreChange kinds
CHANGE_REPLACE = "replace"
CHANGE_UPSERT = "upsert"
CHANGE_REMOVE = "remove"
CHANGE_CONFIRM = "confirm"
CHANGE_STATE = "state"


def freeze(record: Mapping) -> Mapping:
    """Read-only view over a private copy; nested lists become tuples."""
    frozen = {}
    for name, value in record.items():
        if isinstance(value, list):
            value = tuple(MappingProxyType(dict(v)) if isinstance(v, Mapping) else v for v in value)
        frozen[name] = value
    return MappingProxyType(frozen)


def thaw(record: Mapping | None) -> dict | None:
    """Plain, mutable (and JSON-friendly) copy of a frozen record."""
    if record is None:
        return None
    plain = {}
    for name, value in record.items():
        if isinstance(value, tuple):
            value = [dict(v) if isinstance(v, Mapping) else v for v in value]
        plain[name] = value
    return plain


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of a CollectionStore at one version."""
    name: str
    items: tuple
    key_field: str = "id"
    loading: bool = False
    error: str | None = None
    version: int = 0
    unconfirmed: frozenset = field(default_factory=frozenset)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def confirmed_items(self) -> tuple:
        """Items not carrying an optimistic tag."""
        return tuple(i for i in self.items if i.get(self.key_field) not in self.unconfirmed)

    def to_dict(self) -> dict:
        return {
            "items": [thaw(item) for item in self.items],
            "loading": self.loading,
            "error": self.error,
        }


@dataclass(frozen=True)
class StoreChange:
    kind: str
    key: Any = None
    before: Mapping | None = None
    after: Mapping | None = None
    confirmed: bool = True
    # Keys of optimistic entries a bulk replace discarded
    reverted: tuple = ()


Listener = Callable[["CollectionStore", StoreChange], None]


class CollectionStore:
    """
    Cache of one entity type keyed by identity.

    Written only by its Reconciler and the OptimisticMutator acting for it;
    everyone else reads snapshot(). Entries written speculatively are tagged
    unconfirmed together with the revision they were derived from.
    """

    def __init__(
        self,
        name: str,
        *,
        key_field: str = "id",
        sort_field: str | None = None,
        descending: bool = False,
        stamp_fields: Iterable[str] = (),
    ):
        self.name = name
        self.key_field = key_field
        self._sort_field = sort_field
        self._descending = descending
        self._ignored = frozenset(stamp_fields) | {REVISION_FIELD}
        self._records: dict[Any, Mapping] = {}
        self._unconfirmed: dict[Any, int | None] = {}
        self._expected: dict[Any, tuple] = {}
        self._tombstones: set = set()
        self._listeners: list[Listener] = []
        self._loading = False
        self._error: str | None = None
        self._version = 0
        self._snapshot: Snapshot | None = None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        if self._snapshot is None:
            items = list(self._records.values())
            if self._sort_field:
                # None sorts last regardless of direction
                present = [i for i in items if i.get(self._sort_field) is not None]
                missing = [i for i in items if i.get(self._sort_field) is None]
                present.sort(key=lambda i: i[self._sort_field], reverse=self._descending)
                items = present + missing
            self._snapshot = Snapshot(
                name=self.name,
                items=tuple(items),
                key_field=self.key_field,
                loading=self._loading,
                error=self._error,
                version=self._version,
                unconfirmed=frozenset(self._unconfirmed),
            )
        return self._snapshot

    def get(self, key) -> Mapping | None:
        return self._records.get(key)

    def __contains__(self, key) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def is_unconfirmed(self, key) -> bool:
        return key in self._unconfirmed

    def base_revision(self, key) -> int | None:
        return self._unconfirmed.get(key)

    def is_tombstoned(self, key) -> bool:
        return key in self._tombstones

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> str | None:
        return self._error

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def replace_all(self, records: Iterable[Mapping]) -> StoreChange:
        """
        Authoritative bulk load. Optimistic entries are dropped; the ones
        whose speculative state the load does not agree with are reported
        as reverted.

        A loaded record agrees with an optimistic entry when its revision is
        newer than the entry's base revision and it carries the entry's
        expected field values. Server-stamped timestamps are not compared.
        """
        fresh = {}
        for record in records:
            frozen = freeze(record)
            fresh[frozen[self.key_field]] = frozen

        reverted = tuple(key for key in self._unconfirmed if not self._agrees(key, fresh.get(key)))
        if reverted:
            logger.info("%s: bulk load reverted %d optimistic entr(ies)", self.name, len(reverted))

        self._records = fresh
        self._unconfirmed.clear()
        self._expected.clear()
        self._tombstones.difference_update(fresh)
        change = StoreChange(CHANGE_REPLACE, reverted=reverted)
        self._commit(change)
        return change

    def _agrees(self, key, loaded: Mapping | None) -> bool:
        speculative = self._records.get(key)
        if loaded is None or speculative is None:
            return False
        base = self._unconfirmed.get(key)
        loaded_rev = revision_of(loaded)
        if base is not None and loaded_rev is not None and loaded_rev <= base:
            return False
        fields = self._expected.get(key) or tuple(speculative)
        return all(loaded.get(name) == speculative.get(name) for name in fields if name not in self._ignored)

    def upsert(
        self,
        record: Mapping,
        *,
        unconfirmed: bool = False,
        base_revision: int | None = None,
        expected_fields: Iterable[str] = (),
    ) -> StoreChange | None:
        """
        Returns None when the write would not change the snapshot.

        expected_fields names the fields an unconfirmed write changed; a
        bulk load confirms the entry when those fields agree.
        """
        frozen = freeze(record)
        key = frozen[self.key_field]
        before = self._records.get(key)
        was_unconfirmed = key in self._unconfirmed
        if before is not None and dict(before) == dict(frozen) and was_unconfirmed == unconfirmed:
            return None

        self._records[key] = frozen
        self._tombstones.discard(key)
        if unconfirmed:
            self._unconfirmed[key] = base_revision
            self._expected[key] = tuple(expected_fields)
        else:
            self._unconfirmed.pop(key, None)
            self._expected.pop(key, None)
        change = StoreChange(CHANGE_UPSERT, key=key, before=before, after=frozen, confirmed=not unconfirmed)
        self._commit(change)
        return change

    def remove(self, key, *, tombstone: bool = False) -> StoreChange | None:
        if tombstone:
            self._tombstones.add(key)
        before = self._records.pop(key, None)
        if before is None:
            return None
        self._unconfirmed.pop(key, None)
        self._expected.pop(key, None)
        change = StoreChange(CHANGE_REMOVE, key=key, before=before)
        self._commit(change)
        return change

    def mark_confirmed(self, key) -> StoreChange | None:
        if key not in self._unconfirmed:
            return None
        del self._unconfirmed[key]
        self._expected.pop(key, None)
        record = self._records.get(key)
        change = StoreChange(CHANGE_CONFIRM, key=key, before=record, after=record)
        self._commit(change)
        return change

    def set_loading(self, loading: bool) -> None:
        if self._loading != loading:
            self._loading = loading
            self._commit(StoreChange(CHANGE_STATE))

    def set_error(self, error: str | None) -> None:
        if self._error != error:
            self._error = error
            self._commit(StoreChange(CHANGE_STATE))

    # -------------------------------------------------------------------------
    # Change notifications
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, change: StoreChange) -> None:
        self._version += 1
        self._snapshot = None
        for listener in list(self._listeners):
            try:
                listener(self, change)
            except Exception:
                # A broken projection must not leave the cache half-notified
                logger.exception("%s: listener %r failed on %s", self.name, listener, change.kind)
