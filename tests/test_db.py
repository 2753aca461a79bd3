import json
from datetime import datetime, timezone

import pytest

from vulnfeeds.db import (
    Advisory,
    DataSource,
    Severity,
    Status,
    Store,
    VulnerabilityDetail,
    bucket_name,
    walk_json_files,
)

SOURCE = DataSource(
    id="photon",
    name="Photon OS CVE metadata",
    url="https://packages.vmware.com/photon/photon_cve_metadata/",
)


def test_bucket_name():
    assert (
        bucket_name("npm", "Node.js Ecosystem Security Working Group")
        == "npm::Node.js Ecosystem Security Working Group"
    )


def test_data_source_round_trip():
    store = Store()
    store.put_data_source("Photon OS 3.0", SOURCE)
    assert DataSource.from_dict(store.get("data-source", "Photon OS 3.0")) == SOURCE


def test_empty_advisory_serialises_to_empty_object():
    assert Advisory().to_dict() == {}


def test_advisory_round_trip_keeps_enums():
    advisory = Advisory(
        vendor_ids=["DLA-2691-1"],
        status=Status.WILL_NOT_FIX,
        severity=Severity.LOW,
        fixed_version="1.7.6-2+deb9u4",
        data_source=SOURCE,
    )
    assert Advisory.from_dict(advisory.to_dict()) == advisory


def test_vulnerability_detail_round_trip():
    detail = VulnerabilityDetail(
        id="CVE-2019-0199",
        cvss_score=-1,
        cvss_score_v3=7.5,
        severity_v3=Severity.HIGH,
        references=["https://example.com/advisory"],
        published_date=datetime(2020, 1, 8, 19, 15, 12, tzinfo=timezone.utc),
    )
    assert VulnerabilityDetail.from_dict(detail.to_dict()) == detail


def test_advisory_detail_and_get_advisories():
    store = Store()
    store.put_advisory_detail(
        "CVE-2019-3828", "ansible", ["Photon OS 1.0"], Advisory(fixed_version="2.7.6-2.ph3")
    )
    assert store.get("advisory-detail", "CVE-2019-3828", "Photon OS 1.0", "ansible") == {
        "FixedVersion": "2.7.6-2.ph3"
    }
    assert store.get_advisories("Photon OS 1.0", "ansible") == [
        Advisory(vulnerability_id="CVE-2019-3828", fixed_version="2.7.6-2.ph3")
    ]
    assert store.get_advisories("Photon OS 2.0", "ansible") == []


def test_get_advisories_attaches_data_source():
    store = Store()
    store.put_data_source("Photon OS 3.0", SOURCE)
    store.put_advisory_detail("CVE-1", "pkg", ["Photon OS 3.0"], Advisory())
    (advisory,) = store.get_advisories("Photon OS 3.0", "pkg")
    assert advisory.data_source == SOURCE
    raw = store.for_each_advisory(["Photon OS 3.0"], "pkg")
    assert raw["CVE-1"][1] == SOURCE


def test_get_advisories_broken_json():
    store = Store({"advisory-detail": {"CVE-1": {"Photon OS 1.0": {"ansible": "{broken"}}}})
    with pytest.raises(ValueError, match="failed to unmarshal advisory JSON"):
        store.get_advisories("Photon OS 1.0", "ansible")


def test_vulnerability_id_and_detail():
    store = Store()
    store.put_vulnerability_id("CVE-1")
    store.put_vulnerability_detail("CVE-1", "photon", VulnerabilityDetail(title="t"))
    assert store.get("vulnerability-id", "CVE-1") == {}
    assert store.get("vulnerability-detail", "CVE-1", "photon") == {"Title": "t"}


def test_get_missing_raises_key_error():
    store = Store()
    store.put_vulnerability_id("CVE-1")
    with pytest.raises(KeyError):
        store.get("vulnerability-id", "CVE-2")
    with pytest.raises(KeyError):
        store.get("advisory-detail")


def test_redhat_mappings():
    store = Store()
    store.put_redhat_repositories("rhel-8-for-x86_64-baseos-rpms", [6])
    store.put_redhat_nvrs("nvr-1", [5, 2])
    store.put_redhat_cpes(0, "cpe:/a:redhat:enterprise_linux:7")
    assert store.redhat_repo_to_cpes("rhel-8-for-x86_64-baseos-rpms") == [6]
    assert store.redhat_nvr_to_cpes("nvr-1") == [5, 2]
    assert store.redhat_repo_to_cpes("unknown") == []
    assert store.get("Red Hat CPE", "cpe", "0") == "cpe:/a:redhat:enterprise_linux:7"


def test_walk_json_files_order_and_empty(tmp_path):
    (tmp_path / "b.json").write_text(json.dumps({"a": 1}))
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "c.json").write_text("{}")
    (tmp_path / "empty.json").write_text("")
    found = list(walk_json_files(tmp_path))
    assert sorted(found) == sorted([tmp_path / "b.json", tmp_path / "a" / "c.json"])


def test_walk_json_files_missing_root(tmp_path):
    with pytest.raises(FileNotFoundError):
        walk_json_files(tmp_path / "missing")