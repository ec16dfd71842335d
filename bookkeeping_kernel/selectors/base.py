"""
Module: bookkeeping_kernel.selectors.base
Responsibility: Base class for the read-only query selectors.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain value types.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances, so callers cannot mutate ledger state through them.
    - Session ownership: the caller owns the session and its transaction,
      which is what gives a report one consistent snapshot.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session from the caller, performs read-only queries and
        returns DTOs.
    """

    def __init__(self, session: Session):
        self.session = session
