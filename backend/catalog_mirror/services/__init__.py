"""
Service Layer

This module exports the sync pipeline and its runtime wiring.
"""
from .full_update_service import FullUpdateService, SyncSettings
from .runtime import SyncRuntime, get_sync_runtime, init_sync_runtime

__all__ = [
    'FullUpdateService',
    'SyncSettings',
    'SyncRuntime',
    'get_sync_runtime',
    'init_sync_runtime',
]
