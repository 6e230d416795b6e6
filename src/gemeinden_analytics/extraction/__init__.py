"""Warehouse access for the Gemeinden KPI snapshots."""

from .snapshot_store import SnapshotStore, quote_identifier

__all__ = ["SnapshotStore", "quote_identifier"]
