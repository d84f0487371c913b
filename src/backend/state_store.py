"""State/lock store - Terraform state and advisory locks kept in ZooKeeper.

Each resource name maps to two independent znodes:

    /<name>        the state document
    /lock-<name>   the lock, whose payload is the holder's lockinfo

Every operation opens its own session, performs its calls and closes the
session. Cross-request consistency comes only from ZooKeeper: version-fenced
writes for updates and atomic node creation for locks.
"""

from dataclasses import dataclass
from typing import Callable, Sequence

import structlog

from src.coordination import CoordinationError, ZookeeperSession, connect
from src.coordination.zookeeper import DEFAULT_TIMEOUT_SECONDS

from .errors import ErrorKind, InvalidNameError, Step, StoreError, classify

logger = structlog.get_logger()

STATE_PREFIX = "/"
LOCK_PREFIX = "/lock-"
# "health" is served by the health check route.
RESERVED_NAMES = frozenset({".", "..", "zookeeper", "health"})

Connector = Callable[[Sequence[str], float], ZookeeperSession]


@dataclass
class LockResult:
    """Result of a lock attempt."""
    already_locked: bool
    lockinfo: bytes


def validate_name(name: str) -> None:
    """Reject names that would not map to exactly one top-level znode."""
    if not name:
        raise InvalidNameError("name must not be empty")
    if "/" in name or "\x00" in name:
        raise InvalidNameError(f"name {name!r} contains a path separator or NUL")
    if name in RESERVED_NAMES:
        raise InvalidNameError(f"name {name!r} is reserved")
    # "/lock-" + x must never collide with "/" + name
    if name.startswith(LOCK_PREFIX[1:]):
        raise InvalidNameError(f"name {name!r} collides with the lock namespace")


def state_path(name: str) -> str:
    return STATE_PREFIX + name


def lock_path(name: str) -> str:
    return LOCK_PREFIX + name


def _failure(log, step: Step, exc: CoordinationError, event: str) -> StoreError:
    kind = classify(step, exc.outcome)
    log.error(event, reason=exc.reason, outcome=exc.outcome.value, error=kind.value)
    return StoreError(kind, reason=exc.reason, outcome=exc.outcome)


class StateStore:
    """Manages Terraform state and locks using ZooKeeper."""

    def __init__(
        self,
        endpoints: Sequence[str],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connector: Connector = connect,
    ):
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.connector = connector

    def _connect(self, log) -> ZookeeperSession:
        try:
            return self.connector(self.endpoints, self.timeout)
        except CoordinationError as exc:
            raise _failure(log, Step.CONNECT, exc, "Cannot connect to zk") from exc

    def get(self, name: str) -> bytes:
        """Return the stored state unchanged."""
        validate_name(name)
        znode = state_path(name)
        log = logger.bind(znode=znode)
        log.debug("Get znode state")

        with self._connect(log) as session:
            try:
                data, _ = session.get(znode)
            except CoordinationError as exc:
                raise _failure(
                    log, Step.GET, exc, "Terraform state cannot be retrieved"
                ) from exc

        log.info("Terraform state retrieved")
        return data

    def update(self, name: str, state: bytes) -> None:
        """Create the state node, or overwrite it fenced on the observed version.

        The existence check and the following write are separate calls. A
        concurrent writer that wins in between makes this call fail with
        CREATE or UPDATE; callers re-read and resubmit.
        """
        validate_name(name)
        znode = state_path(name)
        log = logger.bind(znode=znode)
        log.debug("Update znode state")

        with self._connect(log) as session:
            try:
                stat = session.exists(znode)
            except CoordinationError as exc:
                raise _failure(
                    log, Step.EXISTS, exc, "Cannot check znode's existence"
                ) from exc

            if stat is None:
                try:
                    session.create(znode, state)
                except CoordinationError as exc:
                    raise _failure(log, Step.CREATE, exc, "Cannot create znode") from exc
                log.info("Terraform state created")
                return

            log = log.bind(stat_version=stat.version)
            log.info("Update terraform state")

            try:
                session.set(znode, state, stat.version)
            except CoordinationError as exc:
                raise _failure(log, Step.SET, exc, "Cannot update znode") from exc

        log.info("Terraform state updated")

    def delete(self, name: str) -> None:
        """Delete the state node. The lock, if any, is left alone."""
        validate_name(name)
        self._delete_node(
            state_path(name),
            missing_event="Terraform state does not exist",
            deleted_event="Terraform state deleted",
        )

    def lock(self, name: str, lockinfo: bytes) -> LockResult:
        """Acquire the lock, or report the current holder's lockinfo.

        An existing lock is only read, never overwritten, even when the
        caller is the original holder. Losing a creation race fails with
        CREATE rather than reporting the winner.
        """
        validate_name(name)
        znode = lock_path(name)
        log = logger.bind(znode=znode)
        log.debug("Lock znode state")

        with self._connect(log) as session:
            try:
                stat = session.exists(znode)
            except CoordinationError as exc:
                raise _failure(
                    log, Step.EXISTS, exc, "Cannot check znode's existence"
                ) from exc

            if stat is not None:
                try:
                    existing, _ = session.get(znode)
                except CoordinationError as exc:
                    raise _failure(
                        log, Step.GET_LOCK, exc, "Terraform lock state cannot be retrieved"
                    ) from exc
                log.info("Terraform lock exists")
                return LockResult(already_locked=True, lockinfo=existing)

            try:
                session.create(znode, lockinfo)
            except CoordinationError as exc:
                raise _failure(log, Step.CREATE, exc, "Cannot create znode") from exc

        log.info("Terraform lock created")
        return LockResult(already_locked=False, lockinfo=lockinfo)

    def unlock(self, name: str) -> None:
        """Release the lock regardless of who holds it."""
        validate_name(name)
        self._delete_node(
            lock_path(name),
            missing_event="Terraform lockinfo does not exist",
            deleted_event="Terraform state unlocked",
        )

    def _delete_node(self, znode: str, missing_event: str, deleted_event: str) -> None:
        log = logger.bind(znode=znode)
        log.debug("Delete znode")

        with self._connect(log) as session:
            try:
                stat = session.exists(znode)
            except CoordinationError as exc:
                raise _failure(
                    log, Step.EXISTS, exc, "Cannot check znode's existence"
                ) from exc

            if stat is None:
                log.error(missing_event)
                raise StoreError(ErrorKind.NOT_EXIST)

            log = log.bind(stat_version=stat.version)

            try:
                session.delete(znode, stat.version)
            except CoordinationError as exc:
                raise _failure(log, Step.DELETE, exc, "Cannot delete znode") from exc

        log.info(deleted_event)
