from __future__ import annotations

from functools import lru_cache

from palletpro.config import settings
from palletpro.services.database_snapshot_provider import DatabaseSnapshotProvider
from palletpro.services.mock_snapshot_provider import MockSnapshotProvider
from palletpro.services.snapshot_provider import SnapshotProvider


def build_snapshot_provider(name: str) -> SnapshotProvider:
    provider = name.strip().lower()
    if provider == 'mock':
        return MockSnapshotProvider()
    if provider == 'database':
        from palletpro.db import SessionLocal

        return DatabaseSnapshotProvider(SessionLocal)
    raise ValueError(f'Unknown snapshot provider: {name}')


@lru_cache(maxsize=1)
def get_snapshot_provider() -> SnapshotProvider:
    return build_snapshot_provider(settings.snapshot_provider)
