import pytest

from vulnfeeds.osvrange import (
    DefaultVersionRange,
    MavenVersionRange,
    NpmVersionRange,
    PyPIVersionRange,
    RubyGemsVersionRange,
    SemVerRange,
    VersionRange,
    new_version_range,
)


@pytest.mark.parametrize(
    "ecosystem, cls",
    [
        ("npm", NpmVersionRange),
        ("RubyGems", RubyGemsVersionRange),
        ("PyPI", PyPIVersionRange),
        ("Maven", MavenVersionRange),
        ("Go", SemVerRange),
        ("crates.io", SemVerRange),
        ("NuGet", SemVerRange),
        ("Packagist", DefaultVersionRange),
        ("Hex", DefaultVersionRange),
    ],
)
def test_factory_picks_range_type(ecosystem, cls):
    r = new_version_range(ecosystem, "1.0.0")
    assert type(r) is cls
    assert str(r) == ">=1.0.0"


def test_string_with_fixed():
    r = new_version_range("Go", "1.24.0")
    r.set_fixed("1.24.14")
    assert str(r) == ">=1.24.0, <1.24.14"


def test_string_with_last_affected():
    r = new_version_range("Go", "1.24.0")
    r.set_last_affected("1.24.14")
    assert str(r) == ">=1.24.0, <=1.24.14"


def test_zero_lower_bound_is_left_out():
    r = new_version_range("npm", "0")
    r.set_fixed("1.4.1")
    assert str(r) == "<1.4.1"


def test_single_version_range():
    r = new_version_range("PyPI", "4.0.1")
    r.set_last_affected("4.0.1")
    assert str(r) == "=4.0.1"
    assert r.contains("4.0.1")
    assert not r.contains("4.0.2")


def test_later_event_replaces_earlier():
    r = new_version_range("Go", "1.0.0")
    r.set_last_affected("1.5.0")
    r.set_fixed("1.5.0")
    assert str(r) == ">=1.0.0, <1.5.0"
    assert not r.contains("1.5.0")


def test_semver_prerelease_lower_bound():
    r = new_version_range("Go", "1.22.0-0")
    r.set_fixed("1.22.2")
    assert r.contains("1.22.1")
    assert r.contains("1.22.0")
    assert not r.contains("1.22.2")
    assert not r.contains("1.21.9")


def test_npm_range():
    r = new_version_range("npm", "0")
    r.set_fixed("1.5.2")
    assert r.contains("1.5.1")
    assert r.contains("v0.1.0")
    assert not r.contains("1.5.2")


def test_pypi_range_inclusive_upper():
    r = new_version_range("PyPI", "1.0")
    r.set_last_affected("3.8.4")
    assert r.contains("3.8.4")
    assert r.contains("2.0.post1")
    assert not r.contains("3.8.5")
    assert not r.contains("0.9")


def test_rubygems_prerelease_sorts_before_release():
    r = new_version_range("RubyGems", "0")
    r.set_fixed("2.0")
    assert r.contains("2.0.a")
    assert r.contains("1.9.9")
    assert not r.contains("2.0")
    assert not r.contains("2.0.0")


def test_maven_qualifiers():
    r = new_version_range("Maven", "1.0")
    r.set_fixed("2.0")
    assert r.contains("2.0-alpha")
    assert r.contains("1.0.0")
    assert not r.contains("1.0-alpha")
    assert not r.contains("2.0.0")
    assert not r.contains("2.0-sp")


def test_maven_release_aliases_match_plain_version():
    r = new_version_range("Maven", "1.0")
    r.set_last_affected("1.0")
    assert r.contains("1.0-ga")
    assert r.contains("1.0.final")
    assert not r.contains("1.0-rc1")


def test_default_range():
    r = new_version_range("Packagist", "1.0")
    r.set_fixed("2.0")
    assert r.contains("1.5")
    assert r.contains("1.9.99")
    assert not r.contains("2.0.0")


def test_direct_construction_behaves_like_default():
    r = VersionRange("1.0")
    r.set_fixed("2.0")
    assert r.contains("1.2.3")
    assert not r.contains("2.1")


@pytest.mark.parametrize("ecosystem", ["Go", "npm", "Packagist", "PyPI", "RubyGems"])
def test_invalid_version_raises(ecosystem):
    r = new_version_range(ecosystem, "1.0.0")
    with pytest.raises(ValueError, match="failed to parse version"):
        r.contains("not a version")


@pytest.mark.parametrize("ecosystem", ["Go", "npm", "Packagist", "PyPI"])
def test_invalid_constraint_raises(ecosystem):
    r = new_version_range(ecosystem, "bogus!")
    with pytest.raises(ValueError, match="failed to parse version constraint"):
        r.contains("1.0.0")