"""CVSS v3.0 and v3.1 vector parsing and scoring."""

from __future__ import annotations

import math

_BASE_METRICS = ("AV", "AC", "PR", "UI", "S", "C", "I", "A")

_AV = {"N": 0.85, "A": 0.62, "L": 0.55, "P": 0.2}
_AC = {"L": 0.77, "H": 0.44}
_PR_UNCHANGED = {"N": 0.85, "L": 0.62, "H": 0.27}
_PR_CHANGED = {"N": 0.85, "L": 0.68, "H": 0.5}
_UI = {"N": 0.85, "R": 0.62}
_CIA = {"H": 0.56, "L": 0.22, "N": 0.0}
_E = {"X": 1.0, "H": 1.0, "F": 0.97, "P": 0.94, "U": 0.91}
_RL = {"X": 1.0, "U": 1.0, "W": 0.97, "T": 0.96, "O": 0.95}
_RC = {"X": 1.0, "C": 1.0, "R": 0.96, "U": 0.92}
_REQ = {"X": 1.0, "H": 1.5, "M": 1.0, "L": 0.5}

_ALLOWED: dict[str, frozenset[str]] = {
    "AV": frozenset(_AV),
    "AC": frozenset(_AC),
    "PR": frozenset(_PR_UNCHANGED),
    "UI": frozenset(_UI),
    "S": frozenset("UC"),
    "C": frozenset(_CIA),
    "I": frozenset(_CIA),
    "A": frozenset(_CIA),
    "E": frozenset(_E),
    "RL": frozenset(_RL),
    "RC": frozenset(_RC),
    "CR": frozenset(_REQ),
    "IR": frozenset(_REQ),
    "AR": frozenset(_REQ),
}
for _name in ("AV", "AC", "PR", "UI", "S", "C", "I", "A"):
    _ALLOWED["M" + _name] = _ALLOWED[_name] | {"X"}

_PREFIXES = {"CVSS:3.0": "3.0", "CVSS:3.1": "3.1"}


class CVSSError(ValueError):
    """The vector is not a valid CVSS v3 vector."""


def _parse(vector: str) -> tuple[str, dict[str, str]]:
    prefix, _, rest = vector.partition("/")
    version = _PREFIXES.get(prefix)
    if version is None:
        raise CVSSError(f"invalid CVSS v3 prefix in {vector!r}")
    metrics: dict[str, str] = {}
    for part in rest.split("/"):
        name, sep, value = part.partition(":")
        if not sep:
            raise CVSSError(f"invalid metric {part!r}")
        allowed = _ALLOWED.get(name)
        if allowed is None:
            raise CVSSError(f"unknown metric {name!r}")
        if name in metrics:
            raise CVSSError(f"metric {name!r} is defined twice")
        if value not in allowed:
            raise CVSSError(f"invalid value {value!r} for metric {name!r}")
        metrics[name] = value
    missing = [name for name in _BASE_METRICS if name not in metrics]
    if missing:
        raise CVSSError(f"missing base metrics: {', '.join(missing)}")
    return version, metrics


def _roundup(value: float, version: str) -> float:
    if version == "3.0":
        return math.ceil(value * 10) / 10
    scaled = round(value * 100000)
    if scaled % 10000 == 0:
        return scaled / 100000.0
    return (math.floor(scaled / 10000) + 1) / 10.0


def environmental_score(vector: str) -> float:
    """Return the environmental score of a CVSS v3.0 or v3.1 vector.

    Without environmental metrics this equals the temporal score, and without
    temporal metrics it equals the base score.
    """
    version, metrics = _parse(vector)

    def modified(name: str) -> str:
        value = metrics.get("M" + name, "X")
        return metrics[name] if value == "X" else value

    changed = modified("S") == "C"
    miss = min(
        1
        - (1 - _REQ[metrics.get("CR", "X")] * _CIA[modified("C")])
        * (1 - _REQ[metrics.get("IR", "X")] * _CIA[modified("I")])
        * (1 - _REQ[metrics.get("AR", "X")] * _CIA[modified("A")]),
        0.915,
    )
    if changed:
        if version == "3.1":
            impact = 7.52 * (miss - 0.029) - 3.25 * (miss * 0.9731 - 0.02) ** 13
        else:
            impact = 7.52 * (miss - 0.029) - 3.25 * (miss - 0.02) ** 15
    else:
        impact = 6.42 * miss
    privileges = _PR_CHANGED if changed else _PR_UNCHANGED
    exploitability = (
        8.22
        * _AV[modified("AV")]
        * _AC[modified("AC")]
        * privileges[modified("PR")]
        * _UI[modified("UI")]
    )
    if impact <= 0:
        return 0.0
    temporal = _E[metrics.get("E", "X")] * _RL[metrics.get("RL", "X")] * _RC[metrics.get("RC", "X")]
    total = impact + exploitability
    if changed:
        total *= 1.08
    return _roundup(_roundup(min(total, 10), version) * temporal, version)