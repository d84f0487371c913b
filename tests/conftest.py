"""Shared fixtures: an in-memory stand-in for the ZooKeeper ensemble."""

import os
import threading
from typing import Callable

import pytest

# Set test environment variables before imports that might trigger Settings
os.environ.setdefault("AUTH_PASSWORD", "test")

from src.coordination import CoordinationError, NodeStat, Outcome
from src.backend.state_store import StateStore


class FakeZookeeper:
    """Flat node space with atomic create and version-fenced set/delete."""

    def __init__(self):
        self.nodes: dict[str, tuple[bytes, int]] = {}
        self.mutex = threading.Lock()
        self.failures: dict[str, Outcome] = {}
        self.after_exists: Callable[[str], None] | None = None
        self.opened = 0
        self.closed = 0

    def fail(self, call: str, outcome: Outcome) -> None:
        """Make every later `call` fail with `outcome`."""
        self.failures[call] = outcome

    def connect(self, endpoints, timeout):
        self._maybe_fail("connect")
        with self.mutex:
            self.opened += 1
        return FakeSession(self)

    def _maybe_fail(self, call: str) -> None:
        if call in self.failures:
            raise CoordinationError(self.failures[call], f"injected {call} failure")


class FakeSession:
    def __init__(self, service: FakeZookeeper):
        self.service = service

    def exists(self, path):
        self.service._maybe_fail("exists")
        with self.service.mutex:
            node = self.service.nodes.get(path)
        if self.service.after_exists is not None:
            self.service.after_exists(path)
        return None if node is None else NodeStat(version=node[1])

    def get(self, path):
        self.service._maybe_fail("get")
        with self.service.mutex:
            if path not in self.service.nodes:
                raise CoordinationError(Outcome.NO_NODE, path)
            data, version = self.service.nodes[path]
        return data, NodeStat(version=version)

    def create(self, path, payload):
        self.service._maybe_fail("create")
        with self.service.mutex:
            if path in self.service.nodes:
                raise CoordinationError(Outcome.NODE_EXISTS, path)
            self.service.nodes[path] = (payload, 0)
        return NodeStat(version=0)

    def set(self, path, payload, version):
        self.service._maybe_fail("set")
        with self.service.mutex:
            if path not in self.service.nodes:
                raise CoordinationError(Outcome.NO_NODE, path)
            if self.service.nodes[path][1] != version:
                raise CoordinationError(Outcome.BAD_VERSION, path)
            self.service.nodes[path] = (payload, version + 1)
        return NodeStat(version=version + 1)

    def delete(self, path, version):
        self.service._maybe_fail("delete")
        with self.service.mutex:
            if path not in self.service.nodes:
                raise CoordinationError(Outcome.NO_NODE, path)
            if self.service.nodes[path][1] != version:
                raise CoordinationError(Outcome.BAD_VERSION, path)
            del self.service.nodes[path]

    def close(self):
        with self.service.mutex:
            self.service.closed += 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


@pytest.fixture
def zookeeper():
    """Empty in-memory ensemble."""
    return FakeZookeeper()


@pytest.fixture
def store(zookeeper):
    """State store wired to the in-memory ensemble."""
    return StateStore(["zk1:2181"], timeout=1.0, connector=zookeeper.connect)
