"""Domain errors for the state/lock store and their classification."""

from enum import Enum

from src.coordination import Outcome


class ErrorKind(str, Enum):
    """Closed set of failures a store operation can report."""
    CONN = "conn"
    READ = "read"
    NOT_EXIST = "not_exist"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    WRITE = "write"


MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.CONN: "zk-terraform-backend: cannot connect to zk",
    ErrorKind.NOT_EXIST: "zk-terraform-backend: cannot found znode",
    ErrorKind.CREATE: "zk-terraform-backend: cannot create znode",
    ErrorKind.UPDATE: "zk-terraform-backend: cannot update znode",
    ErrorKind.DELETE: "zk-terraform-backend: cannot delete znode",
    ErrorKind.READ: "zk-terraform-backend: cannot read znode",
    ErrorKind.WRITE: "zk-terraform-backend: cannot write to znode",
}


class Step(str, Enum):
    """Adapter call a store operation was performing when it failed."""
    CONNECT = "connect"
    EXISTS = "exists"
    GET = "get"
    GET_LOCK = "get_lock"
    CREATE = "create"
    SET = "set"
    DELETE = "delete"


# Kind for every step whose classification does not depend on the outcome.
STEP_KINDS: dict[Step, ErrorKind] = {
    Step.CONNECT: ErrorKind.CONN,
    Step.EXISTS: ErrorKind.READ,
    Step.GET_LOCK: ErrorKind.READ,
    Step.CREATE: ErrorKind.CREATE,
    Step.SET: ErrorKind.UPDATE,
    Step.DELETE: ErrorKind.DELETE,
}


def classify(step: Step, outcome: Outcome) -> ErrorKind:
    """Map a failed adapter call to the kind reported to callers.

    Only a plain read distinguishes absence. Create races, stale versions and
    any other service failure collapse into their step's kind; the outcome is
    still carried on the raised StoreError.
    """
    if step is Step.GET:
        return ErrorKind.NOT_EXIST if outcome is Outcome.NO_NODE else ErrorKind.READ
    return STEP_KINDS[step]


class StoreError(Exception):
    """A store operation failed; terminal for the current call."""

    def __init__(
        self,
        kind: ErrorKind,
        reason: str | None = None,
        outcome: Outcome | None = None,
    ):
        super().__init__(MESSAGES[kind])
        self.kind = kind
        self.reason = reason
        self.outcome = outcome

    @property
    def message(self) -> str:
        return MESSAGES[self.kind]


class InvalidNameError(ValueError):
    """Resource name cannot be mapped safely onto a ZooKeeper path."""
