from __future__ import annotations

import logging

from flask import Blueprint, Response, current_app, g, jsonify, request
from werkzeug.routing import BaseConverter

from services.download import DownloadProxy
from services.pipeline import ExtensionId, ResolutionPipeline


bp_extensions = Blueprint("extensions_proxy", __name__)

_log = logging.getLogger("marketplace")


class VsixVersionConverter(BaseConverter):
    # Digits and dots only, so "<version>.VSIX" splits unambiguously
    regex = r"[0-9.]+"


@bp_extensions.record_once
def _register_converters(state) -> None:
    state.app.url_map.converters["vsix_version"] = VsixVersionConverter


def _pipeline() -> ResolutionPipeline:
    return current_app.extensions["resolution_pipeline"]


def _download_proxy() -> DownloadProxy:
    return current_app.extensions["download_proxy"]


@bp_extensions.get("/<publisher>/<extension>")
def extension_metadata(publisher: str, extension: str) -> Response:
    # Resolve latest version and return the item with its marketplace details
    ident = ExtensionId.parse(publisher, extension)
    item = _pipeline().resolve_item(ident, request.scheme, request.host)
    return jsonify(item.to_dict())


@bp_extensions.get("/<publisher>/<extension>/<vsix_version:version>.VSIX")
def extension_download(publisher: str, extension: str, version: str) -> Response:
    # Resolve pinned version, then relay the VSIX from the gallery
    ident = ExtensionId.parse(publisher, extension, version)
    item = _pipeline().resolve_item(ident, request.scheme, request.host)
    ds = _download_proxy().open(item)

    _log.info(
        "download_start reqId=%s publisher=%s extension=%s version=%s url=%s",
        getattr(g, "request_id", None),
        item.publisher,
        item.extension,
        item.version,
        item.download_link,
    )
    return Response(ds, status=200, headers=ds.headers, direct_passthrough=True)
