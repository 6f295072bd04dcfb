from __future__ import annotations

from typing import Optional


class MarketplaceError(Exception):
    # Base error; `code` is picked up by the app-wide error handler
    code = 500
    error_type = "internal_error"


class InvalidIdentifierError(MarketplaceError):
    code = 400
    error_type = "invalid_parameters"


class FetchError(MarketplaceError):
    """Upstream page or binary could not be retrieved."""

    code = 502
    error_type = "upstream_unavailable"

    def __init__(self, url: str, reason: str, status: Optional[int] = None) -> None:
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"fetch failed url={url} status={status} reason={reason}")


class ParseError(MarketplaceError):
    """Embedded metadata block is missing or cannot be decoded."""

    code = 502
    error_type = "upstream_unparseable"


class EmptyVersionListError(MarketplaceError):
    code = 404
    error_type = "no_versions"


class VersionNotFoundError(MarketplaceError):
    code = 404
    error_type = "version_not_found"


class TemplateError(MarketplaceError):
    # Malformed link template; a configuration bug, never a request problem
    code = 500
    error_type = "template_error"
