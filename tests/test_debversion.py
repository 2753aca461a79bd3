import itertools

import pytest

from vulnfeeds.debversion import DebianVersion, compare_versions


def test_parse_splits_parts():
    version = DebianVersion.parse("2:1.8.4-5+deb10u1")
    assert version.epoch == 2
    assert version.upstream == "1.8.4"
    assert version.revision == "5+deb10u1"


def test_parse_without_epoch_or_revision():
    version = DebianVersion.parse("1.13.0")
    assert version.epoch == 0
    assert version.upstream == "1.13.0"
    assert version.revision == ""


def test_hyphen_in_upstream_uses_last_hyphen():
    version = DebianVersion.parse("1.0-beta-3")
    assert version.upstream == "1.0-beta"
    assert version.revision == "3"


@pytest.mark.parametrize("text", ["1.8.7-6", "1:0.9-1", "5.0", "2.02-3.1", "1.0~rc1-2"])
def test_str_round_trip(text):
    assert str(DebianVersion.parse(text)) == text


@pytest.mark.parametrize(
    "text", ["", "a1.0", "x:1.0", "-1:1.0", "1.0-", "1.0 2", "1.0-3!"]
)
def test_invalid_versions_raise(text):
    with pytest.raises(ValueError):
        DebianVersion.parse(text)


def test_source_examples():
    # Newer release in the distribution than in sid means already fixed.
    assert compare_versions("5.0-4", "5.0-2") > 0
    assert compare_versions("5.0-4", "5.0-5") < 0
    assert compare_versions("1.8.7-6", "1.8.7-6") == 0


def test_empty_versions():
    assert compare_versions("", "") == 0
    assert compare_versions("", "1.0") < 0
    assert compare_versions("1.0", "") > 0


def test_invalid_version_in_comparison():
    with pytest.raises(ValueError, match="version error"):
        compare_versions("1.0", "not-a-version")


def test_tilde_sorts_before_release():
    assert DebianVersion.parse("1.0~rc1") < DebianVersion.parse("1.0")
    assert DebianVersion.parse("1.0~~") < DebianVersion.parse("1.0~")


def test_epoch_takes_precedence():
    assert DebianVersion.parse("1:0.9") > DebianVersion.parse("2.0")


def test_numeric_runs_compare_as_numbers():
    assert DebianVersion.parse("1.10") > DebianVersion.parse("1.9")
    assert DebianVersion.parse("1.0") == DebianVersion.parse("1.00")


def test_letters_sort_before_symbols():
    assert DebianVersion.parse("1.0a") < DebianVersion.parse("1.0+")


def test_sorting_known_sequence():
    ordered = ["1.0~rc1", "1.0", "1.0-1", "1.0+b1", "1.1", "1:0.1"]
    shuffled = [ordered[3], ordered[5], ordered[0], ordered[2], ordered[4], ordered[1]]
    parsed = [DebianVersion.parse(text) for text in shuffled]
    result = [str(version) for version in sorted(parsed)]
    assert result == ordered


def test_comparison_is_antisymmetric():
    texts = ["1.0", "1.0-1", "1.0~a", "2:0.1", "1.2.3-4+deb9u1", "1.2.3-4"]
    for a, b in itertools.product(texts, repeat=2):
        assert compare_versions(a, b) == -compare_versions(b, a)