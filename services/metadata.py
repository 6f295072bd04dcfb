from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from bs4 import BeautifulSoup, Comment, NavigableString

from services.errors import FetchError, ParseError


# CSS selector of the data island the marketplace renders for page-side scripts
DATA_ISLAND_SELECTOR = ".vss-extension"

_log = logging.getLogger("marketplace")


# =========================
# decoding helpers
# =========================

def _ci(obj: Any) -> Dict[str, Any]:
    # Case-insensitive view of a JSON object
    if not isinstance(obj, dict):
        return {}
    return {str(k).lower(): v for k, v in obj.items()}


def _str(d: Dict[str, Any], key: str) -> str:
    v = d.get(key.lower())
    if v is None:
        return ""
    return v if isinstance(v, str) else str(v)


def _str_list(d: Dict[str, Any], key: str) -> List[str]:
    v = d.get(key.lower())
    if not isinstance(v, list):
        return []
    return [x for x in v if isinstance(x, str)]


def _obj_list(d: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    v = d.get(key.lower())
    if not isinstance(v, list):
        return []
    return [_ci(x) for x in v if isinstance(x, dict)]


def _int(d: Dict[str, Any], key: str) -> int:
    v = d.get(key.lower())
    try:
        return int(v) if v is not None else 0
    except (TypeError, ValueError, OverflowError):
        return 0


def _float(d: Dict[str, Any], key: str) -> float:
    v = d.get(key.lower())
    try:
        return float(v) if v is not None else 0.0
    except (TypeError, ValueError, OverflowError):
        return 0.0


# =========================
# metadata record
# =========================

@dataclass(frozen=True)
class Publisher:
    publisher_id: str = ""
    publisher_name: str = ""
    display_name: str = ""
    flags: str = ""

    @staticmethod
    def from_dict(raw: Any) -> "Publisher":
        d = _ci(raw)
        return Publisher(
            publisher_id=_str(d, "publisherId"),
            publisher_name=_str(d, "publisherName"),
            display_name=_str(d, "displayName"),
            flags=_str(d, "flags"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publisherId": self.publisher_id,
            "publisherName": self.publisher_name,
            "displayName": self.display_name,
            "flags": self.flags,
        }


@dataclass(frozen=True)
class FileRecord:
    asset_type: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {"assetType": self.asset_type, "source": self.source}


@dataclass(frozen=True)
class VersionRecord:
    version: str
    flags: str = ""
    last_updated: str = ""
    files: List[FileRecord] = field(default_factory=list)
    asset_uri: str = ""
    fallback_asset_uri: str = ""

    @staticmethod
    def from_dict(raw: Any) -> "VersionRecord":
        if not isinstance(raw, dict):
            raise ParseError("version entry is not an object")
        d = _ci(raw)
        ver = d.get("version")
        if not isinstance(ver, str) or not ver.strip():
            raise ParseError("version entry without a version string")
        return VersionRecord(
            version=ver.strip(),
            flags=_str(d, "flags"),
            last_updated=_str(d, "lastUpdated"),
            files=[FileRecord(_str(f, "assetType"), _str(f, "source")) for f in _obj_list(d, "files")],
            asset_uri=_str(d, "assetUri"),
            fallback_asset_uri=_str(d, "fallbackAssetUri"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "flags": self.flags,
            "lastUpdated": self.last_updated,
            "files": [f.to_dict() for f in self.files],
            "assetUri": self.asset_uri,
            "fallbackAssetUri": self.fallback_asset_uri,
        }


@dataclass(frozen=True)
class Statistic:
    statistic_name: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"statisticName": self.statistic_name, "value": self.value}


@dataclass(frozen=True)
class InstallationTarget:
    target: str
    target_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"target": self.target, "targetVersion": self.target_version}


@dataclass(frozen=True)
class ExtensionMetadata:
    """Extension description embedded in the marketplace item page.

    ``versions`` keeps the marketplace's order; index 0 is the latest release.
    Decoding is lenient for descriptive fields (missing ones stay empty) but
    strict for the version list, which must be present.
    """

    publisher: Publisher
    extension_id: str = ""
    extension_name: str = ""
    display_name: str = ""
    flags: str = ""
    last_updated: str = ""
    published_date: str = ""
    release_date: str = ""
    short_description: str = ""
    versions: List[VersionRecord] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    statistics: List[Statistic] = field(default_factory=list)
    installation_targets: List[InstallationTarget] = field(default_factory=list)
    deployment_type: int = 0

    @staticmethod
    def from_dict(raw: Any) -> "ExtensionMetadata":
        if not isinstance(raw, dict):
            raise ParseError("metadata is not a JSON object")
        d = _ci(raw)

        versions_raw = d.get("versions")
        if not isinstance(versions_raw, list):
            raise ParseError("metadata has no versions list")

        return ExtensionMetadata(
            publisher=Publisher.from_dict(d.get("publisher")),
            extension_id=_str(d, "extensionId"),
            extension_name=_str(d, "extensionName"),
            display_name=_str(d, "displayName"),
            flags=_str(d, "flags"),
            last_updated=_str(d, "lastUpdated"),
            published_date=_str(d, "publishedDate"),
            release_date=_str(d, "releaseDate"),
            short_description=_str(d, "shortDescription"),
            versions=[VersionRecord.from_dict(v) for v in versions_raw],
            categories=_str_list(d, "categories"),
            tags=_str_list(d, "tags"),
            statistics=[Statistic(_str(s, "statisticName"), _float(s, "value")) for s in _obj_list(d, "statistics")],
            installation_targets=[
                InstallationTarget(_str(t, "target"), _str(t, "targetVersion")) for t in _obj_list(d, "installationTargets")
            ],
            deployment_type=_int(d, "deploymentType"),
        )

    @staticmethod
    def from_json(text: str) -> "ExtensionMetadata":
        try:
            raw = json.loads(text)
        except (ValueError, RecursionError) as exc:
            raise ParseError(f"metadata is not valid JSON: {exc}") from exc
        return ExtensionMetadata.from_dict(raw)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publisher": self.publisher.to_dict(),
            "extensionId": self.extension_id,
            "extensionName": self.extension_name,
            "displayName": self.display_name,
            "flags": self.flags,
            "lastUpdated": self.last_updated,
            "publishedDate": self.published_date,
            "releaseDate": self.release_date,
            "shortDescription": self.short_description,
            "versions": [v.to_dict() for v in self.versions],
            "categories": list(self.categories),
            "tags": list(self.tags),
            "statistics": [s.to_dict() for s in self.statistics],
            "installationTargets": [t.to_dict() for t in self.installation_targets],
            "deploymentType": self.deployment_type,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def version_strings(self) -> List[str]:
        return [v.version for v in self.versions]


# =========================
# extractor
# =========================

def parse_item_page(html: str) -> ExtensionMetadata:
    # Pull the data island out of an item page; nothing else on the page is assumed
    soup = BeautifulSoup(html or "", "html.parser")
    el = soup.select_one(DATA_ISLAND_SELECTOR)
    if el is None:
        raise ParseError(f"no {DATA_ISLAND_SELECTOR} element on page")

    content = el.get_text().strip()
    if not content:
        # <script> islands hold Script strings, which older bs4 get_text() skips
        content = "".join(
            str(s) for s in el.descendants if isinstance(s, NavigableString) and not isinstance(s, Comment)
        ).strip()
    if not content:
        raise ParseError(f"{DATA_ISLAND_SELECTOR} element is empty")
    return ExtensionMetadata.from_json(content)


class MetadataExtractor:
    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None) -> None:
        self._http = session or requests
        self._timeout = timeout

    def extract(self, display_link: str) -> ExtensionMetadata:
        try:
            resp = self._http.get(display_link, timeout=self._timeout)
        except requests.RequestException as exc:
            raise FetchError(display_link, str(exc)) from exc

        try:
            if not 200 <= resp.status_code < 300:
                raise FetchError(display_link, "non-success status", status=resp.status_code)
            html = resp.text
        finally:
            resp.close()

        meta = parse_item_page(html)
        _log.debug("metadata_extracted url=%s versions=%s", display_link, len(meta.versions))
        return meta
