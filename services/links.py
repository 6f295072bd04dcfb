from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from services.errors import InvalidIdentifierError, TemplateError

if TYPE_CHECKING:
    from services.pipeline import ExtensionId


ASSET_VSIX = "Microsoft.VisualStudio.Services.VSIXPackage"

DEFAULT_DISPLAY_TEMPLATE = "https://marketplace.visualstudio.com/items?itemName={publisher}.{extension}"
DEFAULT_DOWNLOAD_TEMPLATE = (
    "https://{publisher}.gallery.vsassets.io/_apis/public"
    "/gallery/publisher/{publisher}/extension/{extension}/{version}"
    "/assetbyname/" + ASSET_VSIX
)


def _render(template: str, **fields: str) -> str:
    try:
        return template.format(**fields)
    except (KeyError, IndexError, ValueError, AttributeError) as exc:
        raise TemplateError(f"bad link template {template!r}: {exc!r}") from exc


@dataclass(frozen=True)
class LinkBuilder:
    """Renders marketplace URLs for an extension.

    Templates are plain ``str.format`` strings with ``{publisher}``,
    ``{extension}`` and (download only) ``{version}`` fields. Both are rendered
    once with sample values on construction, so a broken template surfaces as
    ``TemplateError`` at startup instead of on the first request.
    """

    display_template: str = DEFAULT_DISPLAY_TEMPLATE
    download_template: str = DEFAULT_DOWNLOAD_TEMPLATE

    def __post_init__(self) -> None:
        _render(self.display_template, publisher="p", extension="e", version="0")
        _render(self.download_template, publisher="p", extension="e", version="0")

    def display_link(self, ident: "ExtensionId") -> str:
        if not ident.publisher or not ident.extension:
            raise InvalidIdentifierError("publisher and extension are required")
        return _render(self.display_template, publisher=ident.publisher, extension=ident.extension, version=ident.version or "")

    def download_link(self, ident: "ExtensionId") -> str:
        if not ident.publisher or not ident.extension:
            raise InvalidIdentifierError("publisher and extension are required")
        if not ident.version:
            raise InvalidIdentifierError("download link needs a concrete version")
        return _render(self.download_template, publisher=ident.publisher, extension=ident.extension, version=ident.version)
