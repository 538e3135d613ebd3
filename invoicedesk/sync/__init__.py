from .client import RemoteNotConfiguredError, RemoteStoreError, SupabaseClient, persist_invoice_record
from .reconciler import CollectionSync, SyncManager, SyncState

__all__ = [
    "CollectionSync",
    "RemoteNotConfiguredError",
    "RemoteStoreError",
    "SupabaseClient",
    "SyncManager",
    "SyncState",
    "persist_invoice_record",
]
