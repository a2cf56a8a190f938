"""Response shaping helpers that keep tool results small for language models.

Two independent passes are applied to every successful tool result:

* field projection (``pick_fields``) when the caller asks for specific
  dot-separated paths, and
* noise stripping (``remove_noise_fields``) which drops internal keys by name.

Both passes build new containers and never mutate their input.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Set, Tuple

# Internal or computed keys that carry no value for agents. ``heading`` and
# ``dependsOn`` are almost always empty and can be fetched explicitly.
NOISE_FIELDS = frozenset(
    {
        "_subtaskInheritanceRules",
        "_computed",
        "_internal",
        "useAsDateType",
        "heading",
        "dependsOn",
    }
)


def remove_noise_fields(obj: Any) -> Any:
    """Recursively drop :data:`NOISE_FIELDS` keys from ``obj``.

    Only keys are inspected; values such as empty lists or dictionaries are
    kept because ``tags: []`` is meaningful to a caller.
    """

    if isinstance(obj, list):
        return [remove_noise_fields(item) for item in obj]
    if not isinstance(obj, dict):
        return obj

    return {
        key: remove_noise_fields(value)
        for key, value in obj.items()
        if key not in NOISE_FIELDS
    }


def pick_fields(obj: Any, fields: Iterable[str]) -> Any:
    """Project ``fields`` (dot paths such as ``metadata.priority``) out of ``obj``.

    The output mirrors the nesting of the source. A path whose segment is
    missing at any depth is skipped without affecting the other paths.
    Non-dictionary input is returned unchanged.
    """

    if not isinstance(obj, dict):
        return obj

    result: Dict[str, Any] = {}
    owned = {id(result)}
    for field in fields:
        if not isinstance(field, str) or not field:
            continue
        parts = field.split(".")
        found, value = _resolve_path(obj, parts)
        if found:
            _assign_path(result, parts, value, owned)
    return result


def _resolve_path(obj: Dict[str, Any], parts: List[str]) -> Tuple[bool, Any]:
    current: Any = obj
    for key in parts:
        if not isinstance(current, dict) or key not in current:
            return False, None
        current = current[key]
    return True, current


def _assign_path(
    target: Dict[str, Any], parts: List[str], value: Any, owned: Set[int]
) -> None:
    # ``owned`` tracks containers built here; anything else was copied by
    # reference from the source and must be cloned before writing into it.
    for key in parts[:-1]:
        child = target.get(key)
        if not isinstance(child, dict):
            child = {}
        elif id(child) not in owned:
            child = dict(child)
        owned.add(id(child))
        target[key] = child
        target = child
    target[parts[-1]] = value


def filter_response_fields(
    result: Any, fields: Sequence[str] | None = None, strip_noise: bool = True
) -> Any:
    """Apply projection and noise stripping to a tool result.

    Task list payloads shaped like ``{"tasks": [...], "total": n}`` are
    projected per task so sibling metadata such as pagination counts survives.
    Single-task payloads shaped like ``{"success": true, "task": {...}}``
    project the ``task`` object the same way; ``success`` and any other
    sibling keys are kept as they are, so ``fields=["id"]`` yields
    ``{"success": true, "task": {"id": ...}}``.
    """

    processed = result
    if fields:
        processed = _project(result, list(fields))
    if strip_noise:
        processed = remove_noise_fields(processed)
    return processed


def _project(result: Any, fields: List[str]) -> Any:
    if isinstance(result, dict) and isinstance(result.get("tasks"), list):
        projected = dict(result)
        projected["tasks"] = [pick_fields(task, fields) for task in result["tasks"]]
        return projected
    if isinstance(result, dict) and isinstance(result.get("task"), dict):
        projected = dict(result)
        projected["task"] = pick_fields(result["task"], fields)
        return projected
    if isinstance(result, list):
        return [pick_fields(item, fields) for item in result]
    return pick_fields(result, fields)


def wants_projection(arguments: Dict[str, Any]) -> bool:
    """Return whether ``arguments`` carries a usable ``fields`` selection."""

    fields = arguments.get("fields")
    return isinstance(fields, list) and len(fields) > 0
