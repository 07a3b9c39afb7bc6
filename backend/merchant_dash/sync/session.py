# Overview: Scoped per-merchant dashboard view: reconcilers, mutators, projections and tracking.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Callable, Mapping

from ..errors import NotFoundError
from ..remote.base import RemoteStore
from ..time_utils import resolve_timezone
from .collection import CollectionStore
from .entities import EntitySpec, default_specs, find_spec
from .mutator import MutationOutcome, OptimisticMutator, Transform, Writer
from .projections import DashboardProjections
from .reconciler import Reconciler
from .tracking import ActivityTracker


logger = logging.getLogger(__name__)


@dataclass
class SyncSettings:
    confirmation_timeout: float = 3.0
    retry_attempts: int = 5
    retry_backoff: float = 0.5
    max_backoff: float = 10.0
    notification_limit: int | None = 50
    timezone: tzinfo = field(default_factory=lambda: resolve_timezone(None))

    @classmethod
    def from_config(cls, config: Mapping) -> "SyncSettings":
        return cls(
            confirmation_timeout=float(config.get("CONFIRMATION_TIMEOUT_SECONDS", 3.0)),
            retry_attempts=int(config.get("FEED_RETRY_ATTEMPTS", 5)),
            retry_backoff=float(config.get("FEED_RETRY_BACKOFF_SECONDS", 0.5)),
            max_backoff=float(config.get("FEED_RETRY_MAX_BACKOFF_SECONDS", 10.0)),
            notification_limit=config.get("NOTIFICATION_FETCH_LIMIT", 50),
            timezone=resolve_timezone(config.get("DASHBOARD_TIMEZONE")),
        )


class DashboardSession:
    """
    Everything one merchant's dashboard view needs, with a scoped lifetime.

    open() subscribes and loads every collection; close() releases every
    subscription and discards late events. Use it as an async context
    manager so release happens on every exit path:

        async with DashboardSession(remote, merchant_id) as session:
            session.use_collection("orders")
    """

    def __init__(
        self,
        remote: RemoteStore,
        merchant_id: str,
        settings: SyncSettings | None = None,
        *,
        specs: list[EntitySpec] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.remote = remote
        self.merchant_id = merchant_id
        self.settings = settings or SyncSettings()
        self.specs = specs if specs is not None else default_specs(notification_limit=self.settings.notification_limit)
        self.tracker = ActivityTracker(remote)
        self._clock = clock
        self._reconcilers: dict[str, Reconciler] = {}
        self._mutators: dict[str, OptimisticMutator] = {}
        self._projections: DashboardProjections | None = None
        self._opened = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def timezone(self) -> tzinfo:
        return self.settings.timezone

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> "DashboardSession":
        if self._opened:
            return self
        self._opened = True
        try:
            for spec in self.specs:
                self._reconcilers[spec.name] = Reconciler(
                    self.remote,
                    spec,
                    self.merchant_id,
                    retry_attempts=self.settings.retry_attempts,
                    retry_backoff=self.settings.retry_backoff,
                    max_backoff=self.settings.max_backoff,
                )
            await asyncio.gather(*(r.start() for r in self._reconcilers.values()))

            for name, reconciler in self._reconcilers.items():
                self._mutators[name] = OptimisticMutator(
                    self.remote,
                    reconciler.store,
                    reconciler.spec.table,
                    confirmation_timeout=self.settings.confirmation_timeout,
                )
            if {"orders", "notifications", "inventory"} <= set(self._reconcilers):
                self._projections = DashboardProjections(
                    orders=self.store("orders"),
                    notifications=self.store("notifications"),
                    inventory=self.store("inventory"),
                    tz=self.timezone,
                    clock=self._clock,
                )
        except BaseException:
            logger.exception("Opening dashboard session for merchant %s failed", self.merchant_id)
            await self.close()
            raise
        logger.info("Dashboard session opened for merchant %s", self.merchant_id)
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._projections is not None:
            self._projections.close()
        for mutator in self._mutators.values():
            mutator.close()
        await asyncio.gather(*(r.close() for r in self._reconcilers.values()), return_exceptions=True)
        await self.tracker.drain()
        logger.info("Dashboard session closed for merchant %s", self.merchant_id)

    async def __aenter__(self) -> "DashboardSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Presentation surface
    # -------------------------------------------------------------------------

    def spec(self, key: str) -> EntitySpec:
        return find_spec(self.specs, key)

    def reconciler(self, key: str) -> Reconciler:
        reconciler = self._reconcilers.get(key)
        if reconciler is None:
            raise NotFoundError(f"Unknown collection: {key}")
        return reconciler

    def store(self, key: str) -> CollectionStore:
        return self.reconciler(key).store

    def mutator(self, key: str) -> OptimisticMutator:
        mutator = self._mutators.get(key)
        if mutator is None:
            raise NotFoundError(f"Unknown collection: {key}")
        return mutator

    def use_collection(self, key: str) -> dict:
        """{items, loading, error} for one collection."""
        return self.store(key).snapshot().to_dict()

    async def mutate(self, key: str, record_id, transform: Transform, *, write: Writer | None = None) -> MutationOutcome:
        return await self.mutator(key).mutate(record_id, transform, write=write)

    async def refresh(self, key: str):
        return await self.reconciler(key).load()

    def projections(self) -> dict:
        if self._projections is None:
            raise NotFoundError("Projections need the orders, notifications and inventory collections")
        return self._projections.as_dict()

    def earnings(self, days: int = 7) -> dict:
        if self._projections is None:
            raise NotFoundError("Earnings need the orders collection")
        return self._projections.earnings(days)
