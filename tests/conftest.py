"""
Shared pytest fixtures for flfaves tests.

Provides a recording storage area so tests can assert which calls were made,
plus snapshots of every storage schema the tool has written.
"""

import copy
from typing import Any, Optional

import pytest


class RecordingStorage:
    """
    Dict-backed storage area that records every call.

    Set ``fail_on`` to a method name ("get", "set", "remove", "clear")
    to make that method raise.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None, area: str = "local"):
        self.area = area
        self.data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: Optional[str] = None

    def _record(self, name: str, arg: Any) -> None:
        self.calls.append((name, copy.deepcopy(arg)))
        if self.fail_on == name:
            raise OSError(f"{name} failed")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def get(self, keys=None) -> dict[str, Any]:
        self._record("get", keys)
        if keys is None:
            return copy.deepcopy(self.data)
        if isinstance(keys, dict):
            return {k: copy.deepcopy(self.data.get(k, d)) for k, d in keys.items()}
        if isinstance(keys, str):
            keys = [keys]
        return {k: copy.deepcopy(self.data[k]) for k in keys if k in self.data}

    def set(self, items: dict[str, Any]) -> None:
        self._record("set", items)
        self.data.update(copy.deepcopy(items))

    def remove(self, keys) -> None:
        self._record("remove", keys)
        if isinstance(keys, str):
            keys = [keys]
        for key in keys:
            self.data.pop(key, None)

    def clear(self) -> None:
        self._record("clear", None)
        self.data = {}


@pytest.fixture
def make_storage():
    """Factory for RecordingStorage instances."""
    def factory(initial=None, area="local"):
        return RecordingStorage(initial, area=area)
    return factory


# -----------------------------------------------------------------------------
# Snapshots of each schema version
# -----------------------------------------------------------------------------

@pytest.fixture
def v0_snapshot():
    return {
        "branch_faves": [101, 202, 303],
        "branch_reorder_mode": "branch_reorder_active",
    }


@pytest.fixture
def v1_snapshot():
    return {
        "storage_schema": 1,
        "branch_fave_array": [101, 202],
        "storylet_fave_array": [501],
        "card_protect_array": [701, 702],
        "card_discard_array": [801],
        "block_action": "true",
    }


@pytest.fixture
def v2_snapshot():
    return {
        "storage_schema": 2,
        "block_action": "false",
        "branch_faves_keys": ["branch_faves_0"],
        "branch_faves_0": [101, 202],
        "branch_avoids_keys": [],
        "storylet_faves_keys": [],
        "storylet_avoids_keys": [],
        "card_protects_keys": ["card_protects_0"],
        "card_protects_0": [701, 702, 703],
        "card_discards_keys": ["card_discards_0"],
        "card_discards_0": [801],
    }


@pytest.fixture
def legacy_snapshot():
    """Unversioned chunked data with both old and new card categories."""
    return {
        "block_action": "false",
        "branch_faves_keys": [],
        "card_protects_keys": ["card_protects_0"],
        "card_protects_0": [701, 702],
        "card_faves_keys": ["card_faves_0"],
        "card_faves_0": [703, 704],
        "card_avoids_keys": [],
    }


@pytest.fixture
def v3_snapshot():
    return {
        "storage_schema": 3,
        "block_action": True,
        "branch_reorder_mode": "branch_reorder_all",
        "switch_mode": "modifier_click",
        "branch_faves_keys": ["branch_faves_0"],
        "branch_faves_0": [101, 202],
        "card_faves_keys": ["card_faves_0"],
        "card_faves_0": [701],
        "card_avoids_keys": [],
    }


@pytest.fixture
def v4_snapshot():
    return {
        "storage_schema": 4,
        "click_protection": "shift",
        "branch_reorder_mode": "branch_reorder_active",
        "switch_mode": "click_through",
        "branch_faves_keys": ["branch_faves_0"],
        "branch_faves_0": [101, 202],
        "branch_avoids_keys": [],
        "storylet_faves_keys": [],
        "storylet_avoids_keys": [],
        "card_faves_keys": ["card_faves_0"],
        "card_faves_0": [701],
        "card_avoids_keys": [],
    }
