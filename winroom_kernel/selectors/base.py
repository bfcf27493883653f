"""
Module: winroom_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and the pure domain layer.  MUST NOT import from services/ or outer
    layers.

Invariants enforced:
    - Read-only access: selectors never call session.add(), delete(),
      flush() or commit().
    - DTO return convention: selectors return frozen dataclasses or plain
      values, not ORM instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Base for selectors; holds the caller's session."""

    def __init__(self, session: Session):
        self.session = session
