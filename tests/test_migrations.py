"""
Storage schema migration tests.

Covers version detection, each single step, the full v0/v1/v2/v3 -> v4
chains (pure and against a live storage area), legacy unversioned data,
and the unknown-version path.
"""

import copy
import logging

import pytest

from flfaves import migration
from flfaves.chunks import unpack_set
from flfaves.migration import (
    MigrationLoopError,
    UnknownSchemaError,
    detect_version,
    migrate,
    migrate_data,
    plan_migration,
)
from flfaves.types import STORAGE_SCHEMA_VERSION


class TestDetectVersion:

    @pytest.mark.parametrize("marker", [0, 2, 3, 4, 99])
    def test_numeric_marker_wins(self, marker):
        assert detect_version({"storage_schema": marker, "branch_fave_array": []}) == marker

    def test_non_numeric_marker_ignored(self):
        assert detect_version({"storage_schema": "3", "branch_fave_array": []}) == 1

    def test_bool_marker_ignored(self):
        assert detect_version({"storage_schema": True}) == STORAGE_SCHEMA_VERSION

    def test_v1_by_array_key(self):
        assert detect_version({"branch_fave_array": [1, 2, 3]}) == 1

    def test_v1_beats_v0(self):
        assert detect_version({"branch_fave_array": [], "branch_faves": [1]}) == 1

    def test_v0_by_plain_list(self):
        assert detect_version({"branch_faves": [1, 2, 3]}) == 0

    def test_v2_by_index_key(self):
        assert detect_version({"branch_faves_keys": ["branch_faves_0"]}) == 2
        assert detect_version({"card_faves_keys": []}) == 2

    def test_non_list_branch_faves_falls_through(self):
        assert detect_version({"branch_faves": "x", "foo_keys": []}) == 2

    def test_empty_is_current(self):
        assert detect_version({}) == STORAGE_SCHEMA_VERSION

    def test_unrelated_keys_are_current(self):
        assert detect_version({"switch_mode": "click_through"}) == STORAGE_SCHEMA_VERSION


class TestSteps:

    def test_v0_to_v1_renames_list(self):
        result = migration._v0_to_v1({"branch_faves": [1, 2]})
        assert result == {"branch_fave_array": [1, 2], "storage_schema": 1}

    def test_v0_to_v1_without_list(self):
        assert migration._v0_to_v1({"storage_schema": 0}) == {"storage_schema": 1}

    def test_v1_to_v2_packs_all_four(self):
        result = migration._v1_to_v2({
            "storage_schema": 1,
            "branch_fave_array": [2, 1],
            "card_discard_array": [9],
        })
        assert result["storage_schema"] == 2
        assert result["branch_faves_0"] == [1, 2]
        assert result["storylet_faves_keys"] == []
        assert result["card_protects_keys"] == []
        assert unpack_set(result, "card_discards") == {9}
        assert "branch_fave_array" not in result
        assert "card_discard_array" not in result

    def test_v1_to_v2_non_list_treated_as_empty(self):
        result = migration._v1_to_v2({"branch_fave_array": "junk"})
        assert result["branch_faves_keys"] == []

    def test_v2_to_v3_coerces_block_action(self):
        assert migration._v2_to_v3({"block_action": "true"})["block_action"] is True
        assert migration._v2_to_v3({"block_action": "false"})["block_action"] is False
        assert migration._v2_to_v3({"block_action": "yes"})["block_action"] is False

    def test_v2_to_v3_leaves_non_string_block_action(self):
        assert migration._v2_to_v3({"block_action": True})["block_action"] is True
        assert "block_action" not in migration._v2_to_v3({})

    def test_v2_to_v3_absent_obsolete_index_leaves_target(self):
        result = migration._v2_to_v3({"card_faves_keys": ["card_faves_0"], "card_faves_0": [1]})
        assert result["card_faves_keys"] == ["card_faves_0"]
        assert "card_avoids_keys" not in result

    def test_v2_to_v3_empty_obsolete_creates_target_index(self):
        result = migration._v2_to_v3({"card_protects_keys": [], "card_discards_keys": []})
        assert result["card_faves_keys"] == []
        assert result["card_avoids_keys"] == []
        assert "card_protects_keys" not in result
        assert "card_discards_keys" not in result

    def test_v2_to_v3_empty_obsolete_keeps_existing_target(self):
        result = migration._v2_to_v3({
            "card_protects_keys": [],
            "card_faves_keys": ["card_faves_0"],
            "card_faves_0": [5],
        })
        assert unpack_set(result, "card_faves") == {5}

    def test_v2_to_v3_merge_drops_unlisted_target_chunks(self):
        result = migration._v2_to_v3({
            "card_faves_keys": ["card_faves_0", "card_faves_1"],
            "card_faves_0": [1],
            "card_faves_1": [1],
            "card_protects_keys": ["card_protects_0"],
            "card_protects_0": [2],
        })
        assert result["card_faves_keys"] == ["card_faves_0"]
        assert result["card_faves_0"] == [1, 2]
        assert "card_faves_1" not in result
        assert "card_protects_0" not in result

    def test_v3_to_v4(self):
        assert migration._v3_to_v4({"block_action": True})["click_protection"] == "shift"
        assert migration._v3_to_v4({"block_action": False})["click_protection"] == "off"
        assert migration._v3_to_v4({"block_action": "true"})["click_protection"] == "off"
        result = migration._v3_to_v4({})
        assert result == {"click_protection": "off", "storage_schema": 4}


class TestMigrateData:

    def test_v2_dump_to_current(self, v2_snapshot):
        v2_snapshot["block_action"] = "true"
        result = migrate_data(v2_snapshot)

        assert result["storage_schema"] == STORAGE_SCHEMA_VERSION
        assert result["click_protection"] == "shift"
        assert "block_action" not in result
        assert unpack_set(result, "branch_faves") == {101, 202}
        assert unpack_set(result, "card_faves") == {701, 702, 703}
        assert unpack_set(result, "card_avoids") == {801}
        assert "card_protects_keys" not in result
        assert "card_discards_keys" not in result
        assert "card_protects_0" not in result
        assert "card_discards_0" not in result

    def test_current_returns_equal_copy(self, v4_snapshot):
        result = migrate_data(v4_snapshot)
        assert result == v4_snapshot
        assert result is not v4_snapshot

    def test_v0_full_chain(self, v0_snapshot):
        result = migrate_data(v0_snapshot)
        assert result["storage_schema"] == STORAGE_SCHEMA_VERSION
        assert unpack_set(result, "branch_faves") == {101, 202, 303}
        assert "branch_faves" not in result
        assert result["branch_reorder_mode"] == "branch_reorder_active"

    def test_v1_full_chain(self, v1_snapshot):
        result = migrate_data(v1_snapshot)
        assert result["click_protection"] == "shift"
        assert unpack_set(result, "branch_faves") == {101, 202}
        assert unpack_set(result, "storylet_faves") == {501}
        assert unpack_set(result, "card_faves") == {701, 702}
        assert unpack_set(result, "card_avoids") == {801}
        for key in ("branch_fave_array", "storylet_fave_array",
                    "card_protect_array", "card_discard_array", "block_action"):
            assert key not in result

    def test_does_not_mutate_input(self, v2_snapshot, v0_snapshot):
        for snapshot in (v2_snapshot, v0_snapshot):
            before = copy.deepcopy(snapshot)
            migrate_data(snapshot)
            assert snapshot == before

    def test_idempotent(self, legacy_snapshot):
        once = migrate_data(legacy_snapshot)
        assert migrate_data(once) == once

    def test_merge_is_idempotent(self, legacy_snapshot):
        once = migration._v2_to_v3(legacy_snapshot)
        twice = migration._v2_to_v3(dict(once, storage_schema=2))
        assert unpack_set(twice, "card_faves") == unpack_set(once, "card_faves")
        assert twice["card_faves_keys"] == once["card_faves_keys"]

    def test_unknown_version_raises(self):
        with pytest.raises(UnknownSchemaError) as exc_info:
            migrate_data({"storage_schema": 99})
        assert exc_info.value.version == 99
        assert str(exc_info.value) == "Unknown data storage schema (got 99, expected 4)"

    @pytest.mark.parametrize("marker", [-1, 2.5])
    def test_off_chain_versions_raise(self, marker):
        with pytest.raises(UnknownSchemaError):
            migrate_data({"storage_schema": marker})

    def test_step_that_does_not_advance_raises(self, monkeypatch):
        monkeypatch.setitem(migration.MIGRATION_STEPS, 3, lambda data: dict(data))
        with pytest.raises(MigrationLoopError):
            migrate_data({"storage_schema": 3})

    def test_plan_lists_dropped_keys(self, v2_snapshot):
        migrated, removed = plan_migration(v2_snapshot)
        assert set(removed) == {
            "block_action",
            "card_protects_keys", "card_protects_0",
            "card_discards_keys", "card_discards_0",
        }
        assert all(key not in migrated for key in removed)


class TestMigrateStorage:
    """migrate() against a live storage area."""

    def test_v0_with_no_data(self, make_storage):
        storage = make_storage({"storage_schema": 0})
        assert migrate(storage) is True

        result = storage.data
        assert result["storage_schema"] == 4
        assert result["click_protection"] == "off"
        assert "block_action" not in result
        assert unpack_set(result, "branch_faves") == set()
        assert result["card_faves_keys"] == []
        assert result["card_avoids_keys"] == []

    def test_v1_arrays(self, make_storage, v1_snapshot):
        storage = make_storage(v1_snapshot)
        migrate(storage)

        result = storage.data
        assert result["storage_schema"] == 4
        assert result["click_protection"] == "shift"
        assert unpack_set(result, "card_faves") == {701, 702}
        assert unpack_set(result, "card_avoids") == {801}
        assert "card_protects_keys" not in result
        assert "card_discards_keys" not in result
        assert "branch_fave_array" not in result

    def test_v1_without_block_action(self, make_storage):
        storage = make_storage({"storage_schema": 1, "branch_fave_array": [101]})
        migrate(storage)
        assert storage.data["click_protection"] == "off"
        assert unpack_set(storage.data, "branch_faves") == {101}

    def test_v2_renames_card_categories(self, make_storage, v2_snapshot):
        storage = make_storage(v2_snapshot)
        migrate(storage)

        result = storage.data
        assert result["click_protection"] == "off"
        assert unpack_set(result, "card_faves") == {701, 702, 703}
        assert unpack_set(result, "card_avoids") == {801}
        for key in ("card_protects_keys", "card_protects_0",
                    "card_discards_keys", "card_discards_0", "block_action"):
            assert key not in result

    def test_v2_preserves_branch_and_storylet(self, make_storage):
        storage = make_storage({
            "storage_schema": 2,
            "block_action": "false",
            "branch_faves_keys": ["branch_faves_0"],
            "branch_faves_0": [101, 202],
            "branch_avoids_keys": ["branch_avoids_0"],
            "branch_avoids_0": [301],
            "storylet_faves_keys": ["storylet_faves_0"],
            "storylet_faves_0": [501, 502],
            "storylet_avoids_keys": [],
            "card_protects_keys": [],
            "card_discards_keys": [],
        })
        migrate(storage)

        result = storage.data
        assert unpack_set(result, "branch_faves") == {101, 202}
        assert unpack_set(result, "branch_avoids") == {301}
        assert unpack_set(result, "storylet_faves") == {501, 502}
        assert result["card_faves_keys"] == []
        assert result["card_avoids_keys"] == []

    def test_v3_preserves_options(self, make_storage, v3_snapshot):
        storage = make_storage(v3_snapshot)
        migrate(storage)

        result = storage.data
        assert result["click_protection"] == "shift"
        assert result["branch_reorder_mode"] == "branch_reorder_all"
        assert result["switch_mode"] == "modifier_click"
        assert unpack_set(result, "branch_faves") == {101, 202}
        assert unpack_set(result, "card_faves") == {701}
        assert "block_action" not in result

    def test_legacy_merge(self, make_storage, legacy_snapshot):
        storage = make_storage(legacy_snapshot)
        migrate(storage)

        result = storage.data
        assert result["storage_schema"] == 4
        assert unpack_set(result, "card_faves") == {701, 702, 703, 704}
        assert "card_protects_keys" not in result
        assert "card_protects_0" not in result

    def test_legacy_with_new_card_names(self, make_storage):
        storage = make_storage({
            "block_action": "true",
            "branch_faves_keys": ["branch_faves_0"],
            "branch_faves_0": [101, 202],
            "card_faves_keys": ["card_faves_0"],
            "card_faves_0": [701, 702],
            "card_avoids_keys": ["card_avoids_0"],
            "card_avoids_0": [801],
        })
        migrate(storage)

        result = storage.data
        assert result["click_protection"] == "shift"
        assert unpack_set(result, "card_faves") == {701, 702}
        assert unpack_set(result, "card_avoids") == {801}
        assert unpack_set(result, "branch_faves") == {101, 202}

    def test_writes_then_removes(self, make_storage, v2_snapshot):
        storage = make_storage(v2_snapshot)
        migrate(storage)
        assert storage.call_names() == ["get", "set", "remove"]

    def test_current_is_not_written(self, make_storage, v4_snapshot):
        storage = make_storage(v4_snapshot)
        assert migrate(storage) is False
        assert storage.call_names() == ["get"]

    def test_fresh_install_is_not_written(self, make_storage):
        storage = make_storage({})
        assert migrate(storage) is False
        assert storage.call_names() == ["get"]
        assert storage.data == {}

    def test_second_run_is_noop(self, make_storage, legacy_snapshot):
        storage = make_storage(legacy_snapshot)
        migrate(storage)
        after_first = copy.deepcopy(storage.data)
        storage.calls.clear()

        assert migrate(storage) is False
        assert storage.call_names() == ["get"]
        assert storage.data == after_first

    def test_logs_success(self, make_storage, v2_snapshot, caplog):
        caplog.set_level(logging.INFO, logger="flfaves")
        migrate(make_storage(v2_snapshot))
        assert "Migrated local storage v2 -> v4" in caplog.text


class TestUnknownVersion:

    def test_returns_false_without_writing(self, make_storage):
        storage = make_storage({"storage_schema": 99, "branch_faves_keys": []})
        assert migrate(storage) is False
        assert storage.call_names() == ["get"]
        assert storage.data["storage_schema"] == 99

    def test_logs_error(self, make_storage, caplog):
        with caplog.at_level(logging.ERROR, logger="flfaves.migration"):
            migrate(make_storage({"storage_schema": 99}))
        assert "Unknown data storage schema (got 99, expected 4)" in caplog.text

    def test_requests_update_check(self, make_storage):
        calls = []
        migrate(make_storage({"storage_schema": 99}), request_update_check=lambda: calls.append(1))
        assert calls == [1]

    def test_update_check_failure_swallowed(self, make_storage):
        def boom():
            raise RuntimeError("offline")

        assert migrate(make_storage({"storage_schema": 99}), request_update_check=boom) is False

    def test_no_update_check_for_known_versions(self, make_storage, v2_snapshot):
        calls = []
        migrate(make_storage(v2_snapshot), request_update_check=lambda: calls.append(1))
        assert calls == []

    def test_read_failure_propagates(self, make_storage):
        storage = make_storage({})
        storage.fail_on = "get"
        with pytest.raises(OSError):
            migrate(storage)
