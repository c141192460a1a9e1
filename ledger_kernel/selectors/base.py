"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), delete(),
      commit() or flush().
    - Selectors return frozen dataclasses, never ORM instances.  Rows are
      selected column-wise so results always reflect the database, not a
      possibly stale identity map.
"""

from abc import ABC

from sqlalchemy.orm import Session

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(
        self,
        session: Session,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self.session = session
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def _page_window(self, page: int | None, limit: int | None) -> tuple[int, int]:
        """Clamp ``page`` to >= 1 and ``limit`` to [1, max_page_size]."""
        page = max(1, page or 1)
        if limit is None:
            limit = self.default_page_size
        limit = min(max(1, limit), self.max_page_size)
        return page, limit


def like_pattern(term: str) -> str:
    """``%term%`` with LIKE wildcards escaped (use with escape='\\\\')."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
