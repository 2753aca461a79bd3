# vulnfeeds

`vulnfeeds` reads vulnerability advisory feeds that are already on disk and
loads them into one normalised, in-memory advisory store. A scanner can then
ask the store which advisories affect a given package.

## Feeds

| Module                  | Feed                                                  |
|-------------------------|-------------------------------------------------------|
| `vulnfeeds.debian`      | Debian Security Tracker (CVE, DLA and DSA records)    |
| `vulnfeeds.redhat_oval` | Red Hat OVAL v2 streams with repository/NVR CPE maps  |
| `vulnfeeds.osv`         | Any directory of entries in OSV format                |
| `vulnfeeds.govulndb`    | The Go Vulnerability Database (`stdlib` entries only) |
| `vulnfeeds.k8svulndb`   | The official Kubernetes CVE feed                      |
| `vulnfeeds.node`        | Node.js Ecosystem Security Working Group              |
| `vulnfeeds.glad`        | GitLab Advisory Database Community (Conan)            |
| `vulnfeeds.photon`      | Photon OS CVE metadata                                |

Supporting modules:

* `vulnfeeds.db`: the `Store`, plus the `Advisory`, `VulnerabilityDetail`,
  `DataSource`, `Severity` and `Status` types it stores.
* `vulnfeeds.debversion`: `DebianVersion` and `compare_versions` for Debian
  version ordering.
* `vulnfeeds.osvmodel`: the OSV data model and `parse_entry`.
* `vulnfeeds.osvrange`: `new_version_range` and per-ecosystem range classes
  (semver, npm, RubyGems, PyPI, Maven and a default).
* `vulnfeeds.cvss`: `environmental_score` for CVSS v3.0 and v3.1 vectors.
* `vulnfeeds.redhat_model` and `vulnfeeds.redhat_parse`: Red Hat advisory
  records, CPE bookkeeping and rpminfo test parsing.

## Installation

```
pip install vulnfeeds
```

## Usage

Every feed source writes into a `vulnfeeds.db.Store`. Call `update` with the
directory that holds the downloaded feed, then query through the source's
`get` method or through the store.

```python
from vulnfeeds.db import Store
from vulnfeeds import debian, govulndb, k8svulndb, photon, redhat_oval

store = Store()

photon.VulnSrc(store).update("cache")
for advisory in photon.VulnSrc(store).get("3.0", "apache-tomcat"):
    print(advisory.vulnerability_id, advisory.fixed_version)

debian_src = debian.VulnSrc(store)
debian_src.update("cache")
for advisory in debian_src.get("10", "libgcrypt20"):
    print(advisory.vulnerability_id, advisory.fixed_version, advisory.status)

govulndb.new_vuln_src(store).update("cache")
k8svulndb.new_vuln_src(store).update("cache")

rh = redhat_oval.VulnSrc(store)
rh.update("cache")
advisories = rh.get("bind", ["rhel-8-for-x86_64-baseos-rpms"], [])
```

`Store.get(*path)` returns the decoded value or bucket at a key path, such as
`store.get("advisory-detail", "CVE-2019-0199", "Photon OS 3.0", "apache-tomcat")`,
and raises `KeyError` when it is absent.

`debian.VulnSrc` also takes a `put` callable that replaces how each finished
advisory is written to the store.

The layout expected under the feed directory:

* `vuln-list-debian/tracker/` for Debian
* `vuln-list-redhat/oval/` and `vuln-list-redhat/cpe/` for Red Hat
* `govulndb/data/osv/` for the Go database
* `k8s-cve-feed/vulns/` for Kubernetes
* `nodejs-security-wg/vuln/` for Node.js
* `vuln-list/glad/conan/` for GitLab
* `vuln-list/photon/` for Photon OS

## Errors

A missing feed directory raises `FileNotFoundError`. Malformed JSON and
versions that cannot be parsed raise `ValueError`. The message names the
stage that failed, for example `failed to decode Photon JSON` or
`JSON decode error`.

## What it does not do

* It does not download feeds. The data must already be on disk.
* The store lives in memory only. Nothing is written to a database file, so
  the data has to be loaded again in each process.
* There is no command-line program. The package is used as a library.

## Running the tests

```
pip install -e ".[test]"
pytest
```