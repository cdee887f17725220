"""
Manifest filters used by image listing.

A filter is a predicate over a Manifest built from a query field name and a
raw string value. Filters are combined conjunctively by ``match_manifest``.
"""

from collections.abc import Callable, Iterable

from imgapi.models.manifest import Manifest

Filter = Callable[[Manifest], bool]

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})


def _parse_bool(value: str) -> bool:
    # Anything outside the accepted true spellings parses as False
    return value in _TRUE_VALUES


def owner_filter(owner: str) -> Filter:
    return lambda m: m.owner == owner


def state_filter(value: str) -> Filter:
    if value == "all":
        return lambda m: True
    return lambda m: m.state.value == value


def name_filter(name: str) -> Filter:
    if name.startswith("~"):
        needle = name[1:]
        return lambda m: needle in m.name
    return lambda m: m.name == name


def version_filter(version: str) -> Filter:
    return lambda m: m.version == version


def public_filter(value: str) -> Filter:
    public = _parse_bool(value)
    return lambda m: m.public == public


def os_filter(os_name: str) -> Filter:
    return lambda m: m.os == os_name


def type_filter(image_type: str) -> Filter:
    return lambda m: m.type == image_type


FILTERS: dict[str, Callable[[str], Filter]] = {
    "owner": owner_filter,
    "state": state_filter,
    "name": name_filter,
    "version": version_filter,
    "public": public_filter,
    "os": os_filter,
    "type": type_filter,
}


def get_filter(name: str, value: str) -> Filter | None:
    """Return the filter for field *name*, or None for unknown fields."""
    factory = FILTERS.get(name)
    if factory is None:
        return None
    return factory(value)


def match_manifest(filters: Iterable[Filter], manifest: Manifest) -> bool:
    return all(f(manifest) for f in filters)
