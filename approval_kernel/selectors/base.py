"""
Read-only selectors over the kernel's tables.

A selector borrows the caller's session, runs SELECTs and hands back frozen
domain values built by each model's ``to_dto()``.  It never adds, deletes,
flushes or commits.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import Session

from approval_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session

    def _dtos(self, statement: Select) -> list[Any]:
        """Run ``statement`` and convert each row's model to its DTO."""
        return [model.to_dto() for model in self.session.execute(statement).scalars()]
