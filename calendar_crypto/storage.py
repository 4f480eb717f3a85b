import uuid
from typing import Optional, Any
from datetime import datetime, timezone
from collections.abc import Iterator, Mapping, MutableMapping
from pydantic import BaseModel as PydanticBaseModel


class SessionStorage(MutableMapping[str, Any]):
    """Ephemeral, dict-like storage scoped to one client session.

    Plain values (the part a host application may persist) live in _data.
    Anything else, derived keys included, lives in _objects: process memory
    only, never returned by ``session_data()``.

    A storage created with ``max_age`` expires that many seconds after
    creation.
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        id: Optional[str] = None,
        max_age: Optional[int] = None
    ) -> None:
        self._data: dict[str, Any] = dict(data or {})
        self._objects: dict[str, Any] = {}
        self._id = id or uuid.uuid4().hex
        self._max_age = max_age or None
        self._created = int(datetime.now(timezone.utc).timestamp())

    def __repr__(self) -> str:
        # objects are listed by name only
        return (
            f'<SessionStorage [id:{self._id}, created:{self._created}] '
            f'data={self._data!r}, objects={list(self._objects)}>'
        )

    @classmethod
    def _is_plain(cls, value: Any) -> bool:
        if value is None or isinstance(value, (bool, int, float, str, datetime)):
            return True
        if isinstance(value, dict):
            return all(cls._is_plain(v) for v in value.values())
        if isinstance(value, (list, tuple)):
            return all(cls._is_plain(v) for v in value)
        return isinstance(value, PydanticBaseModel)

    @property
    def session_id(self) -> str:
        return self._id

    @property
    def created(self) -> int:
        return self._created

    @property
    def max_age(self) -> Optional[int]:
        return self._max_age

    @property
    def expired(self) -> bool:
        if self._max_age is None:
            return False
        now = int(datetime.now(timezone.utc).timestamp())
        return now - self._created > self._max_age

    @property
    def empty(self) -> bool:
        return not self._data and not self._objects

    def session_data(self) -> dict:
        """Return only the plain values (safe to persist)."""
        return self._data

    def session_objects(self) -> dict:
        """Return in-memory objects (never persisted)."""
        return self._objects

    def invalidate(self) -> None:
        """Drop every value, in-memory objects included."""
        self._data = {}
        self._objects = {}

    def __len__(self) -> int:
        return len(self._data) + len(self._objects)

    def __iter__(self) -> Iterator[str]:
        yield from self._data
        yield from self._objects

    def __contains__(self, key: object) -> bool:
        return key in self._objects or key in self._data

    def __getitem__(self, key: str) -> Any:
        if key in self._objects:
            return self._objects[key]
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if self._is_plain(value):
            self._objects.pop(key, None)
            self._data[key] = value
        else:
            self._data.pop(key, None)
            self._objects[key] = value

    def __delitem__(self, key: str) -> None:
        found = self._objects.pop(key, _MISSING) is not _MISSING
        found = (self._data.pop(key, _MISSING) is not _MISSING) or found
        if not found:
            raise KeyError(key)


_MISSING = object()
