"""
Module: cashup_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    pure domain/ types.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never call session.add(), delete(), flush() or
      commit().  The caller owns the session and its transaction.
    - Selectors return frozen dataclasses or computed results, not ORM
      instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Read-only access over a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session
