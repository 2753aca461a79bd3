import json

import pytest

from vulnfeeds.govulndb import GoVulnDBTransformer, new_vuln_src
from vulnfeeds.osv import OSVAdvisory
from vulnfeeds.osvmodel import Entry

BUCKET = "go::The Go Vulnerability Database"

STDLIB = {
    "id": "GO-2024-2687",
    "aliases": ["CVE-2023-45288", "GHSA-4v7x-pqxf-cx7m"],
    "summary": "HTTP/2 CONTINUATION flood in net/http",
    "details": "An attacker may cause an HTTP/2 endpoint to read arbitrary amounts of header data.",
    "affected": [
        {
            "package": {"name": "stdlib", "ecosystem": "Go"},
            "ranges": [
                {
                    "type": "SEMVER",
                    "events": [
                        {"introduced": "0"},
                        {"fixed": "1.21.9"},
                        {"introduced": "1.22.0-0"},
                        {"fixed": "1.22.2"},
                    ],
                }
            ],
        },
        {
            "package": {"name": "example.org/x/net", "ecosystem": "Go"},
            "ranges": [{"type": "SEMVER", "events": [{"introduced": "0"}, {"fixed": "0.23.0"}]}],
        },
    ],
    "references": [
        {"type": "REPORT", "url": "https://example.com/issue/65051"},
        {"type": "FIX", "url": "https://example.com/cl/576155"},
        {"type": "WEB", "url": "https://example.com/announce/YgW0sx8mN3M"},
    ],
    "database_specific": {"url": "https://example.com/vuln/GO-2024-2687"},
}

NON_STDLIB = {
    "id": "GO-2022-1039",
    "aliases": ["CVE-2021-41803"],
    "details": "not stdlib",
    "affected": [
        {
            "package": {"name": "example.org/consul", "ecosystem": "Go"},
            "ranges": [{"type": "SEMVER", "events": [{"introduced": "0"}, {"fixed": "1.11.9"}]}],
        }
    ],
    "database_specific": {"url": "https://example.com/vuln/GO-2022-1039"},
}


def _write(root, name, content):
    directory = root / "govulndb" / "data" / "osv"
    directory.mkdir(parents=True, exist_ok=True)
    (directory / name).write_text(content, encoding="utf-8")


@pytest.fixture
def happy(tmp_path):
    _write(tmp_path, "GO-2024-2687.json", json.dumps(STDLIB))
    _write(tmp_path, "GO-2022-1039.json", json.dumps(NON_STDLIB))
    src = new_vuln_src()
    src.update(tmp_path)
    return src


def test_data_source(happy):
    assert happy.store.get("data-source", BUCKET) == {
        "ID": "govulndb",
        "Name": "The Go Vulnerability Database",
        "URL": "https://pkg.go.dev/vuln/",
    }


def test_advisory_detail(happy):
    assert happy.store.get("advisory-detail", "CVE-2023-45288", BUCKET, "stdlib") == {
        "VendorIDs": ["GHSA-4v7x-pqxf-cx7m", "GO-2024-2687"],
        "PatchedVersions": ["1.21.9", "1.22.2"],
        "VulnerableVersions": ["<1.21.9", ">=1.22.0-0, <1.22.2"],
    }


def test_vulnerability_detail(happy):
    assert happy.store.get("vulnerability-detail", "CVE-2023-45288", "govulndb") == {
        "Title": "HTTP/2 CONTINUATION flood in net/http",
        "Description": STDLIB["details"],
        "References": [
            "https://example.com/issue/65051",
            "https://example.com/cl/576155",
            "https://example.com/announce/YgW0sx8mN3M",
            "https://example.com/vuln/GO-2024-2687",
        ],
    }
    assert happy.store.get("vulnerability-id", "CVE-2023-45288") == {}


def test_non_stdlib_package_is_dropped(happy):
    with pytest.raises(KeyError):
        happy.store.get("advisory-detail", "CVE-2023-45288", BUCKET, "example.org/x/net")


@pytest.mark.parametrize("bucket", ["advisory-detail", "vulnerability-detail", "vulnerability-id"])
def test_only_stdlib_saved(happy, bucket):
    with pytest.raises(KeyError):
        happy.store.get(bucket, "CVE-2021-41803")


def test_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        new_vuln_src().update(tmp_path / "badPath")


def test_broken_json(tmp_path):
    _write(tmp_path, "broken.json", "{")
    with pytest.raises(ValueError, match="JSON decode error"):
        new_vuln_src().update(tmp_path)


def test_transformer_requires_database_specific():
    with pytest.raises(ValueError, match="JSON decode error"):
        GoVulnDBTransformer().transform_advisories([], Entry(id="GO-1"))


def test_transformer_without_url_keeps_references():
    advisories = [OSVAdvisory(pkg_name="stdlib", references=["https://example.com/a"])]
    result = GoVulnDBTransformer().transform_advisories(advisories, Entry(id="GO-1", database_specific={}))
    assert [adv.references for adv in result] == [["https://example.com/a"]]