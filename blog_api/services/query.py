"""
Listing query composition shared by the notes and posts services.

``ListingQuery`` normalises the caller's ``(skip, take, order, search)``
and turns them into the SQLAlchemy pieces every listing needs: one WHERE
clause used for both the page and its total, and an ORDER BY.
"""
import re
from dataclasses import dataclass

from sqlalchemy import ColumnElement, and_, or_

from blog_api.config import settings
from blog_api.exceptions import BadRequestError

ORDERS: tuple[str, ...] = ("newest", "oldest", "popular")
DEFAULT_ORDER = "newest"

_TAG_SPLIT_RE = re.compile(r"[\s,]+")


def normalize_order(order: str | None) -> str:
    """Return *order* if it is a known sort mode, ``"newest"`` otherwise."""
    return order if order in ORDERS else DEFAULT_ORDER


def page_to_skip(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def tokenize_tags(search: str) -> list[str]:
    """Split *search* on whitespace and commas into candidate tag names."""
    return [token for token in _TAG_SPLIT_RE.split(search.strip()) if token]


@dataclass(frozen=True)
class ListingQuery:
    skip: int = 0
    take: int = settings.DEFAULT_PAGE_SIZE
    order: str = DEFAULT_ORDER
    search: str = ""

    @classmethod
    def build(
        cls,
        skip: int | None = None,
        take: int | None = None,
        order: str | None = None,
        search: str | None = None,
    ) -> "ListingQuery":
        """
        Validate and normalise raw listing parameters.

        Negative ``skip``/``take`` are rejected; ``take`` is clamped to
        ``settings.MAX_PAGE_SIZE`` so two requests asking for more than
        the maximum share one cache entry.
        """
        skip = 0 if skip is None else skip
        take = settings.DEFAULT_PAGE_SIZE if take is None else take
        if skip < 0:
            raise BadRequestError("skip must not be negative")
        if take < 0:
            raise BadRequestError("take must not be negative")
        return cls(
            skip=skip,
            take=min(take, settings.MAX_PAGE_SIZE),
            order=normalize_order(order),
            search=search or "",
        )

    def cache_key(self, prefix: str) -> str:
        return f"{prefix}:{self.skip}:{self.take}:{self.order}:{self.search}"

    # ------------------------------------------------------------------
    # SQL composition
    # ------------------------------------------------------------------

    def order_by(self, model) -> tuple:
        if self.order == "oldest":
            return (model.created_at.asc(),)
        if self.order == "popular":
            return (model.views.desc(), model.created_at.desc())
        return (model.created_at.desc(),)

    def where(self, model, *, deleted: bool, extra_matches: tuple = ()) -> ColumnElement[bool]:
        """
        Filter on deletion state AND (title ~ search OR content ~ search
        OR any of *extra_matches*).

        An empty search matches every non-null title, so the substring
        clauses select all rows in that case.
        """
        state = model.deleted_at.is_not(None) if deleted else model.deleted_at.is_(None)
        matches = or_(
            model.title.icontains(self.search, autoescape=True),
            model.content.icontains(self.search, autoescape=True),
            *extra_matches,
        )
        return and_(state, matches)
