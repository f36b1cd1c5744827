"""Case-insensitive HTTP headers.

``Headers`` is the immutable incoming set: it stores raw byte pairs from
the ASGI scope and decodes on access. ``MutableHeaders`` is the outgoing
set a handler writes through ``ctx.headers``; the dispatcher merges it
into the final response.
"""

from collections.abc import Iterable, Iterator, Mapping, MutableMapping


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive request headers.

    ``__getitem__`` returns the first matching value.
    ``get_list`` returns all values for a header.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        object.__setattr__(self, "_raw", raw)

    def __getitem__(self, key: str) -> str:
        key_lower = key.lower().encode("latin-1")
        for name, value in self._raw:
            if name.lower() == key_lower:
                return value.decode("latin-1")
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower().encode("latin-1")
        return any(name.lower() == key_lower for name, _ in self._raw)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._raw:
            key = name.decode("latin-1").lower()
            if key not in seen:
                seen.add(key)
                yield key

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Headers({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        try:
            return self[key]
        except KeyError:
            return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        key_lower = key.lower().encode("latin-1")
        return [value.decode("latin-1") for name, value in self._raw if name.lower() == key_lower]

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """Access raw header byte pairs for ASGI compatibility."""
        return self._raw


class MutableHeaders(MutableMapping[str, str]):
    """Mutable, case-insensitive outgoing headers.

    Keys are stored lower-cased. ``set`` replaces, ``append`` adds
    another value under the same name (e.g. ``Vary``).

    Usage::

        ctx.headers["X-Version"] = "1.2.3"
        if "content-type" not in ctx.headers: ...
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        self._items: list[tuple[str, str]] = []
        pairs = items.items() if isinstance(items, Mapping) else items
        for name, value in pairs:
            self.append(name, value)

    def __getitem__(self, key: str) -> str:
        key_lower = key.lower()
        for name, value in self._items:
            if name == key_lower:
                return value
        raise KeyError(key)

    def __setitem__(self, key: str, value: str) -> None:
        key_lower = key.lower()
        self._items = [(n, v) for n, v in self._items if n != key_lower]
        self._items.append((key_lower, str(value)))

    def __delitem__(self, key: str) -> None:
        key_lower = key.lower()
        if key_lower not in self:
            raise KeyError(key)
        self._items = [(n, v) for n, v in self._items if n != key_lower]

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower()
        return any(name == key_lower for name, _ in self._items)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._items:
            if name not in seen:
                seen.add(name)
                yield name

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        return f"MutableHeaders({self._items!r})"

    def set(self, key: str, value: str) -> None:
        """Replace every value of *key* with *value*."""
        self[key] = value

    def append(self, key: str, value: str) -> None:
        """Add a value without removing existing ones."""
        self._items.append((key.lower(), str(value)))

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        key_lower = key.lower()
        return [value for name, value in self._items if name == key_lower]

    def items_list(self) -> tuple[tuple[str, str], ...]:
        """All (name, value) pairs, repeated names included."""
        return tuple(self._items)
