"""
Pagination driver.

One lazy, forward-only protocol over every pagination style the providers
use: opaque tokens, numeric offsets and next-page URLs. A page is fetched
only when the previous one is exhausted; iteration ends on the first page
without a next marker.

Example:
    >>> fetcher = DispatchPageFetcher(
    ...     dispatcher,
    ...     build_request=lambda token: list_request.replace_query_param("pageToken", token)
    ...         if token else list_request,
    ...     parse_items=lambda result: result.json().get("items", []),
    ...     extract_marker=token_marker("nextPageToken"),
    ... )
    >>> for instance in paginate(fetcher):
    ...     print(instance["name"])
"""

import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

from requests.utils import parse_header_links

from .exceptions import ConfigurationError, ParseError
from .outcome import HttpResult
from .request import CanonicalRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K")
C = TypeVar("C")

Marker = Any
FetchPage = Callable[[Optional[Marker]], "Page[T]"]
MarkerExtractor = Callable[[HttpResult, List[Any], Optional[Marker]], Optional[Marker]]


@dataclass(frozen=True)
class Page(Generic[T]):
    """Ordered items plus the marker of the next page (None on the last page)."""

    items: Sequence[T] = field(default_factory=tuple)
    next_marker: Optional[Marker] = None

    @property
    def is_last(self) -> bool:
        return self.next_marker is None


def iter_pages(fetch_page: FetchPage, marker: Optional[Marker] = None) -> Iterator[Page]:
    """
    Lazily walk pages starting at `marker`.

    Args:
        fetch_page: Callable returning the page for a marker (None = first page)
        marker: Marker to resume from

    Yields:
        Pages in server order, the last one without next_marker
    """
    page_number = 0
    while True:
        page = fetch_page(marker)
        page_number += 1
        logger.debug(
            "Fetched page %d (%d items, has_next=%s)",
            page_number,
            len(page.items),
            page.next_marker is not None,
        )
        yield page
        if page.next_marker is None:
            return
        if page.next_marker == marker:
            raise ParseError(f"Pagination marker did not advance: {marker!r}")
        marker = page.next_marker


def paginate(fetch_page: FetchPage, marker: Optional[Marker] = None) -> Iterator[T]:
    """
    Lazily iterate items across all pages.

    The returned iterator is single-use: exhausting it a second time yields
    nothing. Call paginate() again to restart from the first page.
    """
    for page in iter_pages(fetch_page, marker):
        yield from page.items


def paginate_across(
    parent_keys: Iterable[K],
    mapping: Mapping[K, Iterable[C]],
    fetch_page_for: Callable[[K, C, Optional[Marker]], Page[T]],
) -> Iterator[T]:
    """
    Fan a parent collection across a one-to-many mapping and paginate each child.

    Typical use: regions from one API, zones per region from another source,
    list servers per zone.

    Args:
        parent_keys: Parent collection (e.g. regions)
        mapping: Parent -> children (e.g. region -> zones)
        fetch_page_for: Callable (parent, child, marker) -> Page

    Raises:
        ConfigurationError: Some parents have no entry in `mapping`. Raised
            before any page is fetched.
    """
    parents = list(parent_keys)
    missing = [key for key in parents if key not in mapping]
    if missing:
        raise ConfigurationError(
            "No child mapping for parent key(s): " + ", ".join(str(k) for k in missing)
        )
    return _fan_out(parents, mapping, fetch_page_for)


def _fan_out(parents, mapping, fetch_page_for) -> Iterator[Any]:
    for parent in parents:
        for child in mapping[parent]:
            yield from paginate(
                lambda marker, p=parent, c=child: fetch_page_for(p, c, marker)
            )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MARKER EXTRACTORS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def token_marker(field_name: str = "nextPageToken") -> MarkerExtractor:
    """Opaque continuation token from a JSON body field; empty token ends paging."""

    def extract(result: HttpResult, items: List[Any], marker: Optional[Marker]) -> Optional[Marker]:
        body = result.json()
        token = body.get(field_name) if isinstance(body, dict) else None
        return token or None

    return extract


def next_url_marker(field_name: Optional[str] = None) -> MarkerExtractor:
    """
    Next-page URL from a JSON body field, or from the RFC 5988 Link header.
    """

    def extract(result: HttpResult, items: List[Any], marker: Optional[Marker]) -> Optional[Marker]:
        if field_name is not None:
            body = result.json()
            value = body.get(field_name) if isinstance(body, dict) else None
            return value or None
        link = result.headers.get("Link")
        if not link:
            return None
        for entry in parse_header_links(link):
            if entry.get("rel") == "next" and entry.get("url"):
                return entry["url"]
        return None

    return extract


def offset_marker(limit: int) -> MarkerExtractor:
    """Numeric offset: a short page (fewer than `limit` items) is the last one."""
    if limit <= 0:
        raise ConfigurationError("offset pagination limit must be positive")

    def extract(result: HttpResult, items: List[Any], marker: Optional[Marker]) -> Optional[Marker]:
        if len(items) < limit:
            return None
        return (marker or 0) + len(items)

    return extract


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DISPATCHER ADAPTER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class DispatchPageFetcher(Generic[T]):
    """
    One Dispatcher call per page.

    Args:
        dispatcher: Dispatcher executing each page request
        build_request: Marker (None for the first page) -> CanonicalRequest
        parse_items: HttpResult -> items of the page
        extract_marker: (result, items, marker) -> next marker or None
    """

    def __init__(
        self,
        dispatcher,
        build_request: Callable[[Optional[Marker]], CanonicalRequest],
        parse_items: Callable[[HttpResult], List[T]],
        extract_marker: MarkerExtractor,
    ):
        self._dispatcher = dispatcher
        self._build_request = build_request
        self._parse_items = parse_items
        self._extract_marker = extract_marker

    def __call__(self, marker: Optional[Marker] = None) -> Page[T]:
        request = self._build_request(marker)

        def parse(result: HttpResult) -> Page[T]:
            items = list(self._parse_items(result))
            return Page(tuple(items), self._extract_marker(result, items, marker))

        page = self._dispatcher.execute(request, parser=parse)
        return page if page is not None else Page()
