"""
Cluster layer — worker reports, channels, coordinator-side aggregation.
"""

from services.cluster_service.aggregator import ClusterAggregator, WorkerRecord, merge_series
from services.cluster_service.channel import Channel, ChannelError, PipeChannel, QueueChannel
from services.cluster_service.environment import get_worker_id, is_cluster_worker

__all__ = [
    "ClusterAggregator",
    "WorkerRecord",
    "merge_series",
    "Channel",
    "ChannelError",
    "PipeChannel",
    "QueueChannel",
    "get_worker_id",
    "is_cluster_worker",
]
