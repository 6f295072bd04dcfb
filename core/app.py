from __future__ import annotations

import json
import logging
import sys
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from core.config import AppConfig
from services.download import DownloadProxy
from services.links import LinkBuilder
from services.metadata import MetadataExtractor
from services.pipeline import ResolutionPipeline


def _utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _truncate(v: Any, max_len: int) -> Any:
    if v is None:
        return None
    s = v if isinstance(v, str) else json.dumps(v, ensure_ascii=False, default=str)
    if len(s) <= max_len:
        return v
    return s[:max_len] + "…"


def _request_path() -> str:
    return request.full_path[:-1] if request.full_path.endswith("?") else request.full_path


def _error_type(e: Exception) -> str:
    et = getattr(e, "error_type", None)
    if et:
        return str(et)
    if isinstance(e, HTTPException):
        return (e.name or "http_error").lower().replace(" ", "_")
    return "internal_error"


def _register_blueprints(app: Flask) -> None:
    from api.extensions_proxy import bp_extensions

    app.register_blueprint(bp_extensions, url_prefix="")


def _apply_common_headers(resp: Response) -> Response:
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")
    resp.headers["X-Request-Id"] = getattr(g, "request_id", "")
    return resp


def create_app(cfg: AppConfig, session: Optional[requests.Session] = None) -> Flask:
    app = Flask(__name__)
    app.debug = cfg.debug

    # built once; both objects are read-only afterwards and shared across requests
    links = LinkBuilder(cfg.marketplace_url, cfg.marketplace_download_url)
    extractor = MetadataExtractor(session=session, timeout=cfg.upstream_timeout)
    app.extensions["resolution_pipeline"] = ResolutionPipeline(links, extractor, strict_version_pin=cfg.strict_version_pin)
    app.extensions["download_proxy"] = DownloadProxy(
        session=session,
        timeout=cfg.upstream_timeout,
        chunk_size=cfg.download_chunk_size,
    )

    # Reverse proxy support (common: proto/host/for)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[method-assign]

    @app.before_request
    def _before_request() -> None:
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        g._t0 = time.perf_counter()

    @app.after_request
    def _after_request(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)

        logging.getLogger("access").info(
            "request reqId=%s remote=%s method=%s path=%s status=%s duration_ms=%s bytes=%s host=%s ua=%s",
            getattr(g, "request_id", None),
            request.headers.get("X-Forwarded-For", request.remote_addr),
            request.method,
            _request_path(),
            resp.status_code,
            dur_ms,
            resp.calculate_content_length(),
            request.host,
            request.headers.get("User-Agent"),
        )
        return _apply_common_headers(resp)

    @app.errorhandler(Exception)
    def _handle_exception(e: Exception):
        status = int(getattr(e, "code", None) or 500)

        err_log = logging.getLogger("error")
        if status >= 500:
            err_log.error(
                "exception reqId=%s method=%s path=%s status=%s type=%s",
                getattr(g, "request_id", None),
                request.method,
                _request_path(),
                status,
                type(e).__name__,
                exc_info=sys.exc_info(),
            )
        else:
            err_log.warning(
                "exception reqId=%s method=%s path=%s status=%s type=%s msg=%s",
                getattr(g, "request_id", None),
                request.method,
                _request_path(),
                status,
                type(e).__name__,
                e,
            )

        payload: Dict[str, Any] = {
            "error": True,
            "status": status,
            "errorType": _error_type(e),
            "message": e.description if isinstance(e, HTTPException) else str(e),
            "requestId": getattr(g, "request_id", None),
            "timestamp": _utc_iso(),
        }
        if app.debug:
            payload["traceback"] = _truncate("".join(traceback.format_exception(*sys.exc_info())), 20000)

        resp = jsonify(payload)
        resp.status_code = status
        return _apply_common_headers(resp)

    @app.get("/health")
    def health():
        return jsonify({"ok": True, "timestamp": _utc_iso()}), 200

    _register_blueprints(app)

    logging.getLogger(__name__).info(
        "app_started marketplace_url=%s strict_version_pin=%s",
        cfg.marketplace_url,
        cfg.strict_version_pin,
    )
    return app
