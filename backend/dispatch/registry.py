from __future__ import annotations

"""
Document-kind registry: route key -> processing metadata.

Design intent:
- Build once at startup, then freeze; resolution never depends on iteration order.
- Match keys on whole path segments so a short key cannot fire inside a longer segment.
- Longest key wins; keys that would always tie are rejected at registration.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

from .outcome import UseCaseHandler


class ConfigurationError(ValueError):
    pass


class RouteNotFoundError(LookupError):
    def __init__(self, path: str):
        super().__init__(f"Document type not supported for path: {path}")
        self.path = path


RequestDecoder = Callable[[bytes], Any]


@dataclass(frozen=True)
class DocumentKindDescriptor:
    route_key: str
    decode: RequestDecoder
    handler: UseCaseHandler
    allows_contingency: bool
    document_type_code: str
    title: str = ""


def split_segments(value: str) -> tuple[str, ...]:
    value = (value or "").split("?", 1)[0].split("#", 1)[0]
    return tuple(part.lower() for part in value.split("/") if part.strip())


def _find_match_end(path_segments: tuple[str, ...], key_segments: tuple[str, ...]) -> int:
    """Return the index just past the deepest occurrence of key in path, or -1."""
    width = len(key_segments)
    for start in range(len(path_segments) - width, -1, -1):
        if path_segments[start : start + width] == key_segments:
            return start + width
    return -1


class DocumentKindRegistry:
    def __init__(self, entries: Mapping[tuple[str, ...], DocumentKindDescriptor]):
        self._entries = MappingProxyType(dict(entries))
        # Longest first; equal lengths in key order so ranking is total.
        self._ranked = tuple(
            sorted(self._entries.items(), key=lambda item: (-len(item[0]), item[0]))
        )

    @property
    def entries(self) -> Mapping[tuple[str, ...], DocumentKindDescriptor]:
        return self._entries

    def resolve(self, path: str) -> DocumentKindDescriptor:
        path_segments = split_segments(path)
        best: DocumentKindDescriptor | None = None
        best_rank: tuple[int, int] | None = None
        for key_segments, descriptor in self._ranked:
            if best_rank is not None and len(key_segments) < best_rank[0]:
                break
            end = _find_match_end(path_segments, key_segments)
            if end < 0:
                continue
            rank = (len(key_segments), end)
            if best_rank is None or rank > best_rank:
                best, best_rank = descriptor, rank
        if best is None:
            raise RouteNotFoundError(path)
        return best

    def kinds(self) -> list[DocumentKindDescriptor]:
        return sorted(self._entries.values(), key=lambda d: d.route_key)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, route_key: object) -> bool:
        return isinstance(route_key, str) and split_segments(route_key) in self._entries


class RegistryBuilder:
    """Collects registrations during startup and produces an immutable registry."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, ...], DocumentKindDescriptor] = {}
        self._built = False

    def register(self, route_key: str, descriptor: DocumentKindDescriptor) -> "RegistryBuilder":
        if self._built:
            raise ConfigurationError("Registry already built; register kinds during startup only.")
        key_segments = split_segments(route_key)
        if not key_segments:
            raise ConfigurationError(f"Route key must contain at least one segment: {route_key!r}")
        if key_segments in self._entries:
            existing = self._entries[key_segments].route_key
            raise ConfigurationError(
                f"Route key {route_key!r} is already registered (as {existing!r})."
            )
        if not descriptor.document_type_code:
            raise ConfigurationError(f"Route key {route_key!r} has no document type code.")
        self._entries[key_segments] = descriptor
        return self

    def build(self) -> DocumentKindRegistry:
        self._built = True
        return DocumentKindRegistry(self._entries)
