from .base import (
    ALL_EVENTS,
    DELETE,
    INSERT,
    REVISION_FIELD,
    UPDATE,
    ChangeEvent,
    RemoteResult,
    RemoteStore,
    revision_of,
)
from .feed import ChangeFeedClient, ChangeFeedHub
from .memory_store import InMemoryRemoteStore

__all__ = [
    'ALL_EVENTS', 'INSERT', 'UPDATE', 'DELETE', 'REVISION_FIELD',
    'ChangeEvent', 'RemoteResult', 'RemoteStore', 'revision_of',
    'ChangeFeedClient', 'ChangeFeedHub',
    'InMemoryRemoteStore',
]
