from .collection import CollectionStore, Snapshot, StoreChange
from .entities import (
    EntitySpec,
    InventorySpec,
    MerchantStatusSpec,
    NotificationSpec,
    OrderSpec,
    default_specs,
)
from .mutator import (
    CONFIRMED,
    REJECTED,
    REVERTED,
    ROLLED_BACK,
    UNCHANGED,
    MutationOutcome,
    OptimisticMutator,
)
from .projections import DashboardProjections, RevenueProjection, UnreadCountProjection
from .reconciler import Reconciler
from .session import DashboardSession, SyncSettings
from .tracking import ActivityTracker

__all__ = [
    'CollectionStore', 'Snapshot', 'StoreChange',
    'EntitySpec', 'OrderSpec', 'NotificationSpec', 'MerchantStatusSpec', 'InventorySpec', 'default_specs',
    'CONFIRMED', 'UNCHANGED', 'REJECTED', 'ROLLED_BACK', 'REVERTED', 'MutationOutcome', 'OptimisticMutator',
    'RevenueProjection', 'UnreadCountProjection', 'DashboardProjections',
    'Reconciler',
    'DashboardSession', 'SyncSettings',
    'ActivityTracker',
]
