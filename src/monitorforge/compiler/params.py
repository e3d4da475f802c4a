"""Multi-valued request parameters.

the api takes repeated keys (one groupByFields entry per label) so a plain
dict won't do. encoding sorts by key like go's url.Values does, which keeps
the executed query string stable no matter what order params were added in.
"""

from collections.abc import Iterator

import httpx


class RequestParams:
    """An ordered, append-only bag of key/value pairs."""

    def __init__(self) -> None:
        self._items: list[tuple[str, str]] = []

    def add(self, key: str, value: str) -> None:
        self._items.append((key, value))

    def get(self, key: str) -> str:
        """First value for key, or an empty string."""
        for item_key, value in self._items:
            if item_key == key:
                return value
        return ""

    def get_all(self, key: str) -> list[str]:
        return [value for item_key, value in self._items if item_key == key]

    def items(self) -> list[tuple[str, str]]:
        return list(self._items)

    def to_query_params(self) -> httpx.QueryParams:
        # sorted() is stable so repeated keys keep their insertion order
        return httpx.QueryParams(sorted(self._items, key=lambda item: item[0]))

    def encode(self) -> str:
        return str(self.to_query_params())

    def __contains__(self, key: object) -> bool:
        return any(item_key == key for item_key, _ in self._items)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"RequestParams({self._items!r})"
