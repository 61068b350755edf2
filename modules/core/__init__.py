"""Cross-cutting pieces shared by the domain modules: errors, validation, transactions."""

from .errors import (
    Conflict,
    DomainError,
    InsufficientStock,
    InvalidInput,
    InvalidStateTransition,
    NotFound,
)
from .transaction import transactional

__all__ = [
    "Conflict",
    "DomainError",
    "InsufficientStock",
    "InvalidInput",
    "InvalidStateTransition",
    "NotFound",
    "transactional",
]
