"""
Module: hera_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Tenant filter: every query is constrained by the caller's
      organization_id.  A row in another organization is indistinguishable
      from a missing row.
    - DTO return convention: selectors return DTOs or Pages of DTOs, never
      ORM instances.
    - Filters that cannot match (malformed ids, non-string values) give an
      empty page, never an error.  Only paging arguments are validated.
"""

from abc import ABC
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from hera_kernel.db.base import Base
from hera_kernel.domain.dtos import Page
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.exceptions import InvalidPayloadError

ModelType = TypeVar("ModelType", bound=Base)


def _offset(offset: Any) -> int:
    if offset is None:
        return 0
    if isinstance(offset, bool) or not isinstance(offset, int):
        raise InvalidPayloadError("offset must be an integer", field="offset")
    return max(0, offset)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.
    """

    def __init__(self, session: Session, settings: EngineSettings | None = None):
        self.session = session
        self.settings = settings or EngineSettings()

    def _page(
        self,
        stmt: Select,
        limit: int | None,
        offset: int | None,
        convert: Any,
    ) -> Page:
        """Run ``stmt`` with count, limit and offset; convert each row."""
        limit = self.settings.clamp_limit(limit)
        offset = _offset(offset)
        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        rows = self.session.execute(stmt.limit(limit).offset(offset)).scalars().all()
        return Page(
            items=tuple(convert(row) for row in rows),
            total=total,
            limit=limit,
            offset=offset,
        )

    @staticmethod
    def _empty(limit: int, offset: int | None) -> Page:
        return Page(items=(), total=0, limit=limit, offset=_offset(offset))

    def nothing(self, limit: int | None, offset: int | None) -> Page:
        """The page returned for a filter that cannot match any row."""
        return self._empty(self.settings.clamp_limit(limit), offset)

    @staticmethod
    def _match_text(stmt: Select, filters: Any) -> Select | None:
        """
        Add equality filters for ``(value, column)`` pairs, skipping None.

        Returns None when a value is not a string; such a filter matches
        nothing and is never bound into SQL.
        """
        for value, column in filters:
            if value is None:
                continue
            if not isinstance(value, str):
                return None
            stmt = stmt.where(column == value)
        return stmt
