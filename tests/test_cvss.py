import pytest

from vulnfeeds.cvss import CVSSError, environmental_score


@pytest.mark.parametrize(
    "vector, score",
    [
        ("CVSS:3.1/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N", 6.5),
        ("CVSS:3.1/AV:L/AC:L/PR:L/UI:N/S:U/C:H/I:H/A:H", 7.8),
        ("CVSS:3.1/AV:L/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:H", 6.7),
        ("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H", 9.8),
    ],
)
def test_base_scores(vector, score):
    assert environmental_score(vector) == score


def test_v30_matches_v31_for_unchanged_scope():
    tail = "AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"
    assert environmental_score("CVSS:3.0/" + tail) == environmental_score("CVSS:3.1/" + tail)


def test_changed_scope_is_capped_at_ten():
    assert environmental_score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:C/C:H/I:H/A:H") == 10.0


def test_no_impact_scores_zero():
    assert environmental_score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:N/I:N/A:N") == 0.0


def test_metrics_in_any_order():
    ordered = "CVSS:3.1/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N"
    shuffled = "CVSS:3.1/A:N/I:H/C:H/S:U/UI:N/PR:H/AC:L/AV:N"
    assert environmental_score(shuffled) == environmental_score(ordered)


def test_undefined_optional_metrics_change_nothing():
    base = "CVSS:3.1/AV:L/AC:L/PR:L/UI:N/S:U/C:H/I:H/A:H"
    padded = base + "/E:X/RL:X/RC:X/CR:X/IR:X/AR:X/MAV:X/MAC:X/MPR:X/MUI:X/MS:X/MC:X/MI:X/MA:X"
    assert environmental_score(padded) == environmental_score(base)


def test_temporal_metrics_lower_the_score():
    base = "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"
    assert environmental_score(base + "/E:U/RL:O/RC:U") < environmental_score(base)


def test_modified_metric_overrides_base():
    base = "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"
    physical = "CVSS:3.1/AV:P/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"
    assert environmental_score(base + "/MAV:P") == environmental_score(physical)


def test_low_requirements_never_raise_the_score():
    base = "CVSS:3.0/AV:N/AC:H/PR:L/UI:R/S:C/C:L/I:H/A:L"
    score = environmental_score(base)
    lowered = environmental_score(base + "/CR:L/IR:L/AR:L")
    assert 0.0 <= lowered <= score <= 10.0


@pytest.mark.parametrize(
    "vector",
    [
        "CVSS:2.0/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
        "AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/A:H",
        "CVSS:3.1/AV:Q/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/ZZ:1",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/",
        "CVSS:3.1/AV:X/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
    ],
)
def test_invalid_vectors_raise(vector):
    with pytest.raises(CVSSError):
        environmental_score(vector)


def test_error_is_a_value_error():
    with pytest.raises(ValueError, match="unknown metric"):
        environmental_score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/Q:H")