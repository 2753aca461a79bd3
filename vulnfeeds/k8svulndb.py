"""The official Kubernetes CVE feed."""

from __future__ import annotations

from pathlib import Path

from vulnfeeds.db import DataSource, Store
from vulnfeeds.osv import KUBERNETES, OSV

SOURCE_ID = "k8s"
K8S_DIR = Path("k8s-cve-feed", "vulns")


def new_vuln_src(store: Store | None = None) -> OSV:
    sources = {
        KUBERNETES: DataSource(
            id=SOURCE_ID,
            name="Official Kubernetes CVE Feed",
            url="https://kubernetes.io/docs/reference/issues-security/official-cve-feed/index.json",
        )
    }
    return OSV(K8S_DIR, SOURCE_ID, sources, None, store)