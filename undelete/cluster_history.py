"""Tracks which deleted files have claimed which clusters."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from itertools import combinations


@dataclass(frozen=True)
class ClusterUsage:
    """One claim on a cluster by a deleted file."""

    timestamp: int
    file_id: int
    is_deleted: bool
    write_offset: int


@dataclass
class OverwriteAnalysis:
    """How much of a deleted file's chain is shared with other deleted files."""

    has_overwrite: bool = False
    overwritten_clusters: list[int] = field(default_factory=list)
    overwritten_by: dict[int, list[int]] = field(default_factory=dict)
    overwrite_percentage: float = 0.0


class ClusterHistory:
    """History of cluster claims, keyed by cluster number."""

    def __init__(self) -> None:
        self.cluster_usage_history: dict[int, list[ClusterUsage]] = {}

    def record_cluster_usage(self, cluster: int, file_id: int, write_offset: int) -> None:
        """Record that a deleted file used a cluster at the given offset."""
        usage = ClusterUsage(
            timestamp=time.time_ns(),
            file_id=file_id,
            is_deleted=True,
            write_offset=write_offset,
        )
        self.cluster_usage_history.setdefault(cluster, []).append(usage)

    def find_overlapping_usage(self, cluster: int) -> list[tuple[ClusterUsage, ClusterUsage]]:
        """Pairs of claims on a cluster by different deleted files, earlier first."""
        history = self.cluster_usage_history.get(cluster, [])
        return [
            (first, second)
            for first, second in combinations(history, 2)
            if first.file_id != second.file_id and first.is_deleted and second.is_deleted
        ]