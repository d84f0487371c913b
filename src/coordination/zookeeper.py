"""ZooKeeper adapter - session-scoped primitives over kazoo."""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import structlog
from kazoo.client import KazooClient
from kazoo.exceptions import (
    BadVersionError,
    ConnectionClosedError,
    ConnectionLoss,
    KazooException,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    OperationTimeoutError,
    SessionExpiredError,
)
from kazoo.handlers.threading import KazooTimeoutError

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 1.0


class Outcome(str, Enum):
    """Low-level failure outcomes reported by the coordination service."""
    NO_NODE = "no_node"
    NODE_EXISTS = "node_exists"
    BAD_VERSION = "bad_version"
    NOT_EMPTY = "not_empty"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    OTHER = "other"


# Checked in order; subclasses before their bases.
_OUTCOMES: list[tuple[type[BaseException], Outcome]] = [
    (NoNodeError, Outcome.NO_NODE),
    (NodeExistsError, Outcome.NODE_EXISTS),
    (BadVersionError, Outcome.BAD_VERSION),
    (NotEmptyError, Outcome.NOT_EMPTY),
    (KazooTimeoutError, Outcome.TIMEOUT),
    (OperationTimeoutError, Outcome.TIMEOUT),
    (ConnectionLoss, Outcome.CONNECTION),
    (ConnectionClosedError, Outcome.CONNECTION),
    (SessionExpiredError, Outcome.CONNECTION),
]


class CoordinationError(Exception):
    """A coordination service call failed."""

    def __init__(self, outcome: Outcome, reason: str):
        super().__init__(reason)
        self.outcome = outcome
        self.reason = reason


def outcome_for(exc: BaseException) -> Outcome:
    """Map a kazoo exception to its low-level outcome."""
    for exc_type, outcome in _OUTCOMES:
        if isinstance(exc, exc_type):
            return outcome
    return Outcome.OTHER


def _wrap(exc: BaseException) -> CoordinationError:
    reason = str(exc) or type(exc).__name__
    return CoordinationError(outcome_for(exc), reason)


@dataclass(frozen=True)
class NodeStat:
    """Metadata of a node; version is assigned by the service on every write."""
    version: int


class ZookeeperSession:
    """One connected ZooKeeper session. Not shared between requests."""

    def __init__(self, client: KazooClient):
        self.client = client

    def exists(self, path: str) -> NodeStat | None:
        try:
            stat = self.client.exists(path)
        except (KazooException, KazooTimeoutError) as exc:
            raise _wrap(exc) from exc
        if stat is None:
            return None
        return NodeStat(version=stat.version)

    def get(self, path: str) -> tuple[bytes, NodeStat]:
        try:
            data, stat = self.client.get(path)
        except (KazooException, KazooTimeoutError) as exc:
            raise _wrap(exc) from exc
        return data or b"", NodeStat(version=stat.version)

    def create(self, path: str, payload: bytes) -> NodeStat:
        """Create a persistent node; fails if the path already exists."""
        try:
            self.client.create(path, payload)
        except (KazooException, KazooTimeoutError) as exc:
            raise _wrap(exc) from exc
        # A freshly created node always starts at version 0.
        return NodeStat(version=0)

    def set(self, path: str, payload: bytes, version: int) -> NodeStat:
        """Write payload only if the node is still at `version`."""
        try:
            stat = self.client.set(path, payload, version=version)
        except (KazooException, KazooTimeoutError) as exc:
            raise _wrap(exc) from exc
        return NodeStat(version=stat.version)

    def delete(self, path: str, version: int) -> None:
        """Delete the node only if it is still at `version`."""
        try:
            self.client.delete(path, version=version)
        except (KazooException, KazooTimeoutError) as exc:
            raise _wrap(exc) from exc

    def close(self) -> None:
        try:
            self.client.stop()
        finally:
            self.client.close()

    def __enter__(self) -> "ZookeeperSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def connect(
    endpoints: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> ZookeeperSession:
    """Open a session against the first reachable endpoint.

    Raises CoordinationError with a CONNECTION or TIMEOUT outcome when no
    endpoint answers within `timeout` seconds.
    """
    if not endpoints:
        raise CoordinationError(Outcome.CONNECTION, "no zookeeper endpoints configured")

    try:
        client = KazooClient(hosts=",".join(endpoints), timeout=timeout)
    except ValueError as exc:
        raise CoordinationError(Outcome.CONNECTION, str(exc)) from exc

    try:
        client.start(timeout=timeout)
    except (KazooException, KazooTimeoutError) as exc:
        # kazoo stops and closes the client itself on a start timeout
        raise _wrap(exc) from exc

    logger.debug("Connected to zookeeper", endpoints=list(endpoints))
    return ZookeeperSession(client)
