"""
Name matching helpers shared by the resolvers.

Matching is always exact and case-insensitive; substring matching is used
only to build suggestions for "not found" errors.
"""
from typing import Callable, Iterable, List, Sequence, TypeVar

T = TypeVar("T")

MAX_SUGGESTIONS = 10


def matches_exact_case_insensitive(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def exact_name_matches(items: Iterable[T], name: str, get_name: Callable[[T], str]) -> List[T]:
    """Items whose name equals ``name`` ignoring case, in listing order"""
    return [item for item in items if matches_exact_case_insensitive(get_name(item), name)]


def containing_suggestions(
    items: Sequence[T], query: str, get_name: Callable[[T], str], limit: int = MAX_SUGGESTIONS
) -> List[T]:
    """Items whose name contains the query, or the first ``limit`` items if none do"""
    lower_query = query.lower()
    containing = [item for item in items if lower_query in get_name(item).lower()]
    if containing:
        return containing[:limit]
    return list(items[:limit])


def name_suggestions(names: Sequence[str], query: str, limit: int = MAX_SUGGESTIONS) -> List[str]:
    """Names starting with the query, else containing it, else the first ``limit``"""
    lower_query = query.lower()
    starts_with = [name for name in names if name.lower().startswith(lower_query)]
    if starts_with:
        return starts_with[:limit]

    contains = [name for name in names if lower_query in name.lower()]
    if contains:
        return contains[:limit]

    return list(names[:limit])


def dedupe_by_id(items: Iterable[T], get_id: Callable[[T], str]) -> List[T]:
    """Drop repeated IDs, keeping the first occurrence and its position"""
    seen = set()
    deduped = []
    for item in items:
        item_id = get_id(item)
        if item_id in seen:
            continue
        seen.add(item_id)
        deduped.append(item)
    return deduped
