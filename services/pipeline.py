from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from services.errors import InvalidIdentifierError
from services.links import LinkBuilder
from services.metadata import ExtensionMetadata, MetadataExtractor
from services.versions import resolve_version


_SEGMENT_RE = re.compile(r"[A-Za-z0-9._-]+")
_VERSION_RE = re.compile(r"[0-9.]+")

_log = logging.getLogger("marketplace")


def _safe_seg(s: str, what: str) -> str:
    s2 = (s or "").strip()
    if not s2 or s2 in {".", ".."} or not _SEGMENT_RE.fullmatch(s2):
        raise InvalidIdentifierError(f"bad {what}: {s!r}")
    return s2


@dataclass(frozen=True)
class ExtensionId:
    # (publisher, extension, optional version) identifying a marketplace package
    publisher: str
    extension: str
    version: Optional[str] = None

    @staticmethod
    def parse(publisher: str, extension: str, version: Optional[str] = None) -> "ExtensionId":
        ver = (version or "").strip() or None
        if ver is not None and not _VERSION_RE.fullmatch(ver):
            raise InvalidIdentifierError(f"bad version: {version!r}")
        return ExtensionId(
            publisher=_safe_seg(publisher, "publisher"),
            extension=_safe_seg(extension, "extension"),
            version=ver,
        )

    def with_version(self, version: str) -> "ExtensionId":
        return replace(self, version=version)


@dataclass(frozen=True)
class ResolvedItem:
    publisher: str
    extension: str
    version: str
    link: str
    download_link: str
    api_download_link: str
    details: ExtensionMetadata

    @property
    def filename(self) -> str:
        return f"{self.extension}-{self.version}.VSIX"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publisher": self.publisher,
            "extension": self.extension,
            "version": self.version,
            "link": self.link,
            "downloadLink": self.download_link,
            "apiDownloadLink": self.api_download_link,
            "details": self.details.to_dict(),
        }


def api_download_link(scheme: str, host: str, publisher: str, extension: str, version: str) -> str:
    return f"{scheme}://{host}/{publisher}/{extension}/{version}.VSIX"


class ResolutionPipeline:
    """Turns an ``ExtensionId`` into a ``ResolvedItem``.

    Exactly one outbound request per call (the item page). Errors from the
    link builder, extractor or version resolver propagate unchanged; nothing
    is cached between calls.
    """

    def __init__(self, links: LinkBuilder, extractor: MetadataExtractor, strict_version_pin: bool = False) -> None:
        self.links = links
        self.extractor = extractor
        self.strict_version_pin = strict_version_pin

    def resolve_item(self, ident: ExtensionId, scheme: str, host: str) -> ResolvedItem:
        link = self.links.display_link(ident)
        details = self.extractor.extract(link)
        version = resolve_version(details, ident.version, strict=self.strict_version_pin)

        concrete = ident.with_version(version)
        item = ResolvedItem(
            publisher=concrete.publisher,
            extension=concrete.extension,
            version=version,
            link=link,
            download_link=self.links.download_link(concrete),
            api_download_link=api_download_link(scheme, host, concrete.publisher, concrete.extension, version),
            details=details,
        )

        _log.info("extension_resolved publisher=%s extension=%s version=%s pinned=%s", item.publisher, item.extension, item.version, bool(ident.version))
        _log.info("extension_link link=%s", item.link)
        return item
