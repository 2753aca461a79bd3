"""The Go Vulnerability Database feed (standard library advisories only)."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any

from vulnfeeds.db import DataSource, Store
from vulnfeeds.osv import GO, OSV, OSVAdvisory
from vulnfeeds.osvmodel import Entry

SOURCE_ID = "govulndb"
OSV_DIR = Path("govulndb", "data", "osv")


def _database_url(specific: Any) -> str:
    if not isinstance(specific, dict):
        raise ValueError("JSON decode error: database_specific must be a JSON object")
    url = specific.get("url")
    if url is None:
        return ""
    if not isinstance(url, str):
        raise ValueError("JSON decode error: url must be a string")
    return url


class GoVulnDBTransformer:
    """Keeps only stdlib advisories and adds the database URL as a reference."""

    def transform_advisories(self, advisories: list[OSVAdvisory], entry: Entry) -> list[OSVAdvisory]:
        url = _database_url(entry.database_specific)
        filtered = []
        for adv in advisories:
            if adv.pkg_name != "stdlib":
                continue
            if url:
                adv = replace(adv, references=[*adv.references, url])
            filtered.append(adv)
        return filtered


def new_vuln_src(store: Store | None = None) -> OSV:
    sources = {
        GO: DataSource(
            id=SOURCE_ID,
            name="The Go Vulnerability Database",
            url="https://pkg.go.dev/vuln/",
        )
    }
    return OSV(OSV_DIR, SOURCE_ID, sources, GoVulnDBTransformer(), store)