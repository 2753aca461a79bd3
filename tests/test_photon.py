import json

import pytest

from vulnfeeds.db import Advisory, Store
from vulnfeeds.photon import VulnSrc


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data))


def test_update_happy(tmp_path):
    _write(
        tmp_path / "vuln-list" / "photon" / "3.0" / "CVE-2019-0199.json",
        {
            "os_version": "3.0",
            "cve_id": "CVE-2019-0199",
            "pkg": "apache-tomcat",
            "cve_score": 7.5,
            "aff_ver": "all versions before 8.5.40-1.ph3 are vulnerable",
            "res_ver": "8.5.40-1.ph3",
        },
    )
    vs = VulnSrc()
    vs.update(tmp_path)
    store = vs.store
    assert store.get("data-source", "Photon OS 3.0") == {
        "ID": "photon",
        "Name": "Photon OS CVE metadata",
        "URL": "https://packages.vmware.com/photon/photon_cve_metadata/",
    }
    assert store.get("advisory-detail", "CVE-2019-0199", "Photon OS 3.0", "apache-tomcat") == {
        "FixedVersion": "8.5.40-1.ph3"
    }
    assert store.get("vulnerability-detail", "CVE-2019-0199", "photon") == {"CvssScoreV3": 7.5}
    assert store.get("vulnerability-id", "CVE-2019-0199") == {}


def test_update_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        VulnSrc().update(tmp_path / "badPath")


def test_update_broken_json(tmp_path):
    _write(tmp_path / "vuln-list" / "photon" / "3.0" / "CVE-2019-0199.json", "{broken")
    with pytest.raises(ValueError, match="failed to decode Photon JSON"):
        VulnSrc().update(tmp_path)


def _happy_store():
    store = Store()
    store.put_advisory_detail(
        "CVE-2019-3828", "ansible", ["Photon OS 1.0"], Advisory(fixed_version="2.7.6-2.ph3")
    )
    return store


def test_get_happy():
    vs = VulnSrc(_happy_store())
    assert vs.get("1.0", "ansible") == [
        Advisory(vulnerability_id="CVE-2019-3828", fixed_version="2.7.6-2.ph3")
    ]


def test_get_no_advisories():
    assert VulnSrc(_happy_store()).get("2.0", "ansible") == []


def test_get_broken():
    store = Store({"advisory-detail": {"CVE-2019-3828": {"Photon OS 1.0": {"ansible": "[}"}}}})
    with pytest.raises(ValueError, match="failed to unmarshal advisory JSON"):
        VulnSrc(store).get("1.0", "ansible")