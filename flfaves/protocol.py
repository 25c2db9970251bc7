"""
Protocol definition for storage areas.

Every component reads and writes through this interface. Implemented by:
- MemoryStorageArea (in-process dict)
- SqliteStorageArea (local SQLite file)
"""

from typing import Any, Callable, Iterable, Optional, Protocol, Union, runtime_checkable

# (changes, area_name); changes maps key -> {"old_value": ..., "new_value": ...}
ChangeListener = Callable[[dict[str, dict[str, Any]], str], None]


@runtime_checkable
class StorageAreaProtocol(Protocol):
    """
    A flat key-value store with JSON-compatible values.

    get(None)         -> every entry
    get([names])      -> the subset that is present
    get({name: dflt}) -> every named key, with dflt where absent
    """

    area: str

    def get(
        self,
        keys: Optional[Union[str, list[str], dict[str, Any]]] = None,
    ) -> dict[str, Any]: ...

    def set(self, items: dict[str, Any]) -> None: ...

    def remove(self, keys: Union[str, Iterable[str]]) -> None: ...

    def clear(self) -> None: ...


@runtime_checkable
class ObservableStorageArea(StorageAreaProtocol, Protocol):
    """Storage area that reports changes to registered listeners."""

    def add_listener(self, listener: ChangeListener) -> None: ...

    def remove_listener(self, listener: ChangeListener) -> None: ...
