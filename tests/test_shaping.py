"""Tests for response projection and noise stripping."""

from __future__ import annotations

import copy

from taskgate.shaping import (
    NOISE_FIELDS,
    filter_response_fields,
    pick_fields,
    remove_noise_fields,
    wants_projection,
)


def _task(task_id="t1"):
    return {
        "id": task_id,
        "content": "Write report",
        "completed": False,
        "_computed": {"score": 3},
        "metadata": {
            "priority": 2,
            "tags": [],
            "heading": [],
            "dependsOn": [],
            "useAsDateType": "due",
            "_subtaskInheritanceRules": {"x": 1},
            "children": [{"id": "c1", "_internal": True, "heading": ["H"]}],
        },
    }


def test_remove_noise_fields_strips_denylisted_keys_recursively():
    cleaned = remove_noise_fields([_task()])

    task = cleaned[0]
    assert "_computed" not in task
    assert set(task["metadata"]) == {"priority", "tags", "children"}
    assert task["metadata"]["children"] == [{"id": "c1"}]


def test_remove_noise_fields_keeps_empty_values():
    cleaned = remove_noise_fields({"tags": [], "extra": {}, "note": None})
    assert cleaned == {"tags": [], "extra": {}, "note": None}


def test_remove_noise_fields_is_idempotent_and_does_not_mutate():
    source = {"tasks": [_task("a"), _task("b")], "nested": [[{"heading": 1, "k": [{}]}]]}
    original = copy.deepcopy(source)

    once = remove_noise_fields(source)
    twice = remove_noise_fields(once)

    assert once == twice
    assert source == original


def test_remove_noise_fields_passes_scalars_through():
    assert remove_noise_fields(5) == 5
    assert remove_noise_fields("heading") == "heading"
    assert remove_noise_fields(None) is None


def test_noise_fields_denylist():
    assert NOISE_FIELDS == {
        "_subtaskInheritanceRules",
        "_computed",
        "_internal",
        "useAsDateType",
        "heading",
        "dependsOn",
    }


def test_pick_fields_mirrors_nested_paths():
    picked = pick_fields(_task(), ["id", "metadata.priority"])
    assert picked == {"id": "t1", "metadata": {"priority": 2}}


def test_pick_fields_skips_missing_segments_only():
    picked = pick_fields(_task(), ["id", "metadata.missing.deep", "nope", "content"])
    assert picked == {"id": "t1", "content": "Write report"}


def test_pick_fields_is_idempotent_on_its_own_output():
    source = {"a": {"b": {"c": 1}, "x": 2}, "y": 3}
    first = pick_fields(source, ["a.b"])
    second = pick_fields(first, ["a.b"])
    assert first == second == {"a": {"b": {"c": 1}}}


def test_pick_fields_overlapping_paths_do_not_mutate_input():
    source = {"a": {"b": 1, "c": 2}}
    original = copy.deepcopy(source)

    picked = pick_fields(source, ["a", "a.b"])

    assert picked == {"a": {"b": 1, "c": 2}}
    assert source == original


def test_pick_fields_returns_non_dict_unchanged():
    assert pick_fields([1, 2], ["a"]) == [1, 2]
    assert pick_fields("text", ["a"]) == "text"


def test_filter_response_fields_projects_tasks_and_keeps_siblings():
    result = {"tasks": [_task("a"), _task("b")], "total": 2}

    shaped = filter_response_fields(result, ["id", "completed"])

    assert shaped == {
        "tasks": [{"id": "a", "completed": False}, {"id": "b", "completed": False}],
        "total": 2,
    }


def test_filter_response_fields_projects_single_task_object():
    result = {"success": True, "task": _task("T1")}
    shaped = filter_response_fields(result, ["id", "completed"])
    assert shaped == {"success": True, "task": {"id": "T1", "completed": False}}


def test_filter_response_fields_maps_over_lists():
    shaped = filter_response_fields([_task("a"), 7], ["id"])
    assert shaped == [{"id": "a"}, 7]


def test_filter_response_fields_raw_keeps_noise():
    result = {"task": _task()}
    shaped = filter_response_fields(result, None, strip_noise=False)
    assert shaped == result
    assert shaped["task"]["metadata"]["heading"] == []


def test_wants_projection():
    assert wants_projection({"fields": ["id"]})
    assert not wants_projection({"fields": []})
    assert not wants_projection({"fields": "id"})
    assert not wants_projection({})
