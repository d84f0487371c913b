"""Backend - Terraform state and lock store on ZooKeeper, with its HTTP surface."""

from .config import Settings
from .errors import ErrorKind, InvalidNameError, StoreError, classify
from .state_store import LockResult, StateStore

__all__ = [
    "ErrorKind",
    "InvalidNameError",
    "LockResult",
    "Settings",
    "StateStore",
    "StoreError",
    "classify",
]
