"""
Module: statement_kernel.selectors.base
Responsibility: Abstract base class for all read-only selectors.
Architecture position: Kernel > Selectors.  May import from db/base.py and
    models/.  Selectors NEVER create, modify, or delete data.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), delete(),
      commit() or flush().
    - DTO return convention: selectors return frozen dataclasses from
      statement_kernel.domain.dtos, never ORM instances.
    - Session ownership: the caller owns the session and its transaction
      scope (read-committed snapshot).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from statement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.
    """

    def __init__(self, session: Session):
        self.session = session
