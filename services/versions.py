from __future__ import annotations

import re
from typing import Optional

from services.errors import EmptyVersionListError, ParseError, VersionNotFoundError
from services.metadata import ExtensionMetadata


# Same syntax the download route accepts
_VERSION_RE = re.compile(r"[0-9.]+")


def resolve_version(record: ExtensionMetadata, requested: Optional[str] = None, strict: bool = False) -> str:
    """Pick the version to operate on.

    Without a request the first entry of ``record.versions`` wins; the
    marketplace's ordering is taken as-is and no semver comparison happens.
    That entry has to be digits and dots, otherwise the links built from it
    would point at nothing this service can serve.
    A requested version is passed through unchanged unless ``strict`` is set,
    in which case it has to be one of the listed versions.
    """
    req = (requested or "").strip()
    if req:
        if strict and req not in record.version_strings():
            raise VersionNotFoundError(f"version {req} is not published for {record.extension_id or record.extension_name}")
        return req

    if not record.versions:
        raise EmptyVersionListError(f"no versions listed for {record.extension_id or record.extension_name}")

    latest = record.versions[0].version
    if not _VERSION_RE.fullmatch(latest):
        raise ParseError(f"latest version {latest!r} of {record.extension_id or record.extension_name} is not a plain version")
    return latest
