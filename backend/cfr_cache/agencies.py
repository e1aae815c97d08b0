"""Lookups over the eCFR agency hierarchy.

Traversals use an explicit stack so deep or malformed trees cannot exhaust
the interpreter's recursion limit.
"""
from __future__ import annotations

from typing import Iterable, Iterator

from cfr_cache.errors import AgencyNotFound
from cfr_cache.schemas.ecfr import Agency
from cfr_cache.upstream import AgencyCatalog


def iter_agencies(agencies: Iterable[Agency]) -> Iterator[Agency]:
    """Depth-first, pre-order walk over every agency and descendant."""
    stack = list(reversed(list(agencies)))
    seen: set[int] = set()
    while stack:
        agency = stack.pop()
        if id(agency) in seen:
            continue
        seen.add(id(agency))
        yield agency
        stack.extend(reversed(agency.children))


def find_agency_by_slug(agencies: Iterable[Agency], slug: str) -> Agency | None:
    wanted = slug.strip().lower()
    for agency in iter_agencies(agencies):
        if agency.slug.lower() == wanted:
            return agency
    return None


def iter_slugs(agencies: Iterable[Agency]) -> list[str]:
    return [agency.slug for agency in iter_agencies(agencies)]


def collect_title_numbers(agency: Agency) -> list[int]:
    """Distinct CFR title numbers referenced by `agency` or any descendant."""
    numbers: set[int] = set()
    for node in iter_agencies([agency]):
        for ref in node.cfr_references:
            if ref.title is not None:
                numbers.add(ref.title)
    return sorted(numbers)


async def resolve_agency(catalog: AgencyCatalog, slug: str) -> Agency:
    """Fetch the agency tree and return the node for `slug`."""
    agencies = list(await catalog.list_agencies())
    agency = find_agency_by_slug(agencies, slug)
    if agency is None:
        raise AgencyNotFound(slug, iter_slugs(agencies))
    return agency
