"""Reading the rpminfo tests, objects and states of a Red Hat OVAL stream."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class RpmInfoTest:
    """What an rpminfo test checks once its object and state refs are followed."""

    name: str = ""
    signature_key_id: str = ""
    fixed_version: str = ""
    arch: str = ""


def _fields(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return {key.lower(): value for key, value in data.items()}


def _text(fields: dict[str, Any], key: str) -> str:
    value = fields.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _items(fields: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = fields.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list")
    return [_fields(item) for item in value]


def _load(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return _fields(json.load(f))
        except ValueError as exc:
            raise ValueError(f"failed to decode Red Hat OVAL JSON: {exc}") from exc


def _parse_objects(dir: Path) -> dict[str, str]:
    data = _load(dir / "objects" / "objects.json")
    try:
        return {_text(obj, "id"): _text(obj, "name") for obj in _items(data, "rpminfoobjects")}
    except ValueError as exc:
        raise ValueError(f"failed to unmarshal objects: {exc}") from exc


def _parse_states(dir: Path) -> dict[str, dict[str, Any]]:
    data = _load(dir / "states" / "states.json")
    try:
        return {_text(state, "id"): state for state in _items(data, "rpminfostate")}
    except ValueError as exc:
        raise ValueError(f"failed to unmarshal states: {exc}") from exc


def follow_test_refs(
    test: dict[str, Any], objects: dict[str, str], states: dict[str, dict[str, Any]]
) -> RpmInfoTest:
    """Resolve a raw rpminfo test against object names and raw states.

    A missing reference yields what was found so far; a reference that
    points nowhere raises ValueError.
    """
    fields = _fields(test)
    test_id = _text(fields, "id")

    object_ref = _text(_fields(fields.get("object")), "objectref")
    if not object_ref:
        return RpmInfoTest()
    name = objects.get(object_ref)
    if name is None:
        raise ValueError(
            f"invalid tests data, can't find object ref: {object_ref}, test ref: {test_id}"
        )

    state_ref = _text(_fields(fields.get("state")), "stateref")
    if not state_ref:
        return RpmInfoTest(name=name)
    raw_state = states.get(state_ref)
    if raw_state is None:
        raise ValueError(
            f"invalid tests data, can't find ovalstate ref {state_ref}, test ref: {test_id}"
        )
    state = _fields(raw_state)

    arch = _fields(state.get("arch"))
    arch_text = ""
    if _text(arch, "datatype") == "string" and _text(arch, "operation") in ("pattern match", "equals"):
        arch_text = _text(arch, "text")

    evr = _fields(state.get("evr"))
    fixed_version = ""
    if _text(evr, "datatype") == "evr_string" and _text(evr, "operation") == "less than":
        fixed_version = _text(evr, "text")

    return RpmInfoTest(
        name=name,
        signature_key_id=_text(_fields(state.get("signaturekeyid")), "text"),
        fixed_version=fixed_version,
        arch=arch_text,
    )


def parse_tests(dir: str | os.PathLike[str]) -> dict[str, RpmInfoTest]:
    """Read the "at least one" rpminfo tests of a stream directory, keyed by test ID."""
    root = Path(dir)
    objects = _parse_objects(root)
    states = _parse_states(root)
    data = _load(root / "tests" / "tests.json")
    try:
        raw_tests = _items(data, "rpminfotests")
    except ValueError as exc:
        raise ValueError(f"failed to unmarshal tests: {exc}") from exc

    tests: dict[str, RpmInfoTest] = {}
    for raw in raw_tests:
        if _text(raw, "check") != "at least one":
            continue
        try:
            tests[_text(raw, "id")] = follow_test_refs(raw, objects, states)
        except ValueError as exc:
            raise ValueError(f"unable to follow test refs: {exc}") from exc
    return tests