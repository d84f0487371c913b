"""Coordination layer - ZooKeeper sessions and failure outcomes."""

from .zookeeper import (
    CoordinationError,
    NodeStat,
    Outcome,
    ZookeeperSession,
    connect,
)

__all__ = [
    "CoordinationError",
    "NodeStat",
    "Outcome",
    "ZookeeperSession",
    "connect",
]
