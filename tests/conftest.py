"""Shared fixtures: fake upstream HTTP and marketplace page builders."""

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest
import requests

from core.app import create_app
from core.config import AppConfig
from services.links import DEFAULT_DISPLAY_TEMPLATE, DEFAULT_DOWNLOAD_TEMPLATE


class FakeResponse:
    """Just enough of requests.Response for the extractor and download proxy."""

    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        content: bytes = b"",
        chunks: Optional[Iterable[bytes]] = None,
        fail_after: Optional[int] = None,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self.content = content
        self._chunks = list(chunks) if chunks is not None else None
        self._fail_after = fail_after
        self.headers: Dict[str, str] = {}
        self.closed = False
        self.chunk_sizes: List[int] = []

    def iter_content(self, chunk_size: int = 1):
        self.chunk_sizes.append(chunk_size)
        if self._chunks is not None:
            parts = self._chunks
        else:
            parts = [self.content[i : i + chunk_size] for i in range(0, len(self.content), chunk_size)]
        for n, part in enumerate(parts):
            if self._fail_after is not None and n >= self._fail_after:
                raise requests.exceptions.ChunkedEncodingError("connection broken")
            yield part

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Maps URLs to canned responses (or exceptions) and records every GET."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def get(self, url: str, **kwargs: Any) -> Any:
        self.calls.append((url, kwargs))
        target = self.routes.get(url)
        if target is None:
            raise requests.exceptions.ConnectionError(f"no route to {url}")
        if isinstance(target, BaseException):
            raise target
        return target

    def urls(self) -> List[str]:
        return [u for u, _ in self.calls]


def display_url(publisher: str, extension: str) -> str:
    return DEFAULT_DISPLAY_TEMPLATE.format(publisher=publisher, extension=extension)


def download_url(publisher: str, extension: str, version: str) -> str:
    return DEFAULT_DOWNLOAD_TEMPLATE.format(publisher=publisher, extension=extension, version=version)


def item_page(metadata: Any, tag: str = "script") -> str:
    body = metadata if isinstance(metadata, str) else json.dumps(metadata)
    return (
        "<!DOCTYPE html><html><head><title>Marketplace</title></head><body>"
        '<div class="rhs-content">Install</div>'
        '<script class="jiContent" type="application/json">{"unrelated": true}</script>'
        f'<{tag} class="vss-extension" defer="defer" type="application/json">{body}</{tag}>'
        "</body></html>"
    )


def marketplace_metadata(versions: Iterable[str] = ("2.0", "1.0")) -> Dict[str, Any]:
    return {
        "publisher": {
            "publisherId": "0b4c2a6e-7c7f-4e3c-9b1a-2d3e4f5a6b7c",
            "publisherName": "acme",
            "displayName": "ACME Corp",
            "flags": "verified",
        },
        "extensionId": "5d1b7f4a-1111-2222-3333-444455556666",
        "extensionName": "foo",
        "displayName": "Foo Tools",
        "flags": "validated, public",
        "lastUpdated": "2024-05-01T10:00:00.000Z",
        "publishedDate": "2020-01-02T03:04:05.000Z",
        "releaseDate": "2020-01-02T03:04:05.000Z",
        "shortDescription": "Tools for foo files",
        "versions": [
            {
                "version": v,
                "flags": "validated",
                "lastUpdated": "2024-05-01T10:00:00.000Z",
                "files": [
                    {
                        "assetType": "Microsoft.VisualStudio.Services.VSIXPackage",
                        "source": f"https://acme.gallery.vsassets.io/foo/{v}/vsix",
                    },
                    {
                        "assetType": "Microsoft.VisualStudio.Services.Icons.Default",
                        "source": f"https://acme.gallery.vsassets.io/foo/{v}/icon.png",
                    },
                ],
                "assetUri": f"https://acme.gallery.vsassets.io/foo/{v}",
                "fallbackAssetUri": f"https://acme.gallerycdn.vsassets.io/foo/{v}",
            }
            for v in versions
        ],
        "categories": ["Programming Languages", "Linters"],
        "tags": ["foo", "lint"],
        "statistics": [
            {"statisticName": "install", "value": 12345},
            {"statisticName": "averagerating", "value": 4.5},
        ],
        "installationTargets": [{"target": "Microsoft.VisualStudio.Code", "targetVersion": ""}],
        "deploymentType": 0,
    }


@pytest.fixture
def metadata_dict() -> Dict[str, Any]:
    return marketplace_metadata()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        host="127.0.0.1",
        port=8080,
        debug=False,
        log_level="INFO",
        json_logs=False,
        marketplace_url=DEFAULT_DISPLAY_TEMPLATE,
        marketplace_download_url=DEFAULT_DOWNLOAD_TEMPLATE,
        upstream_timeout=None,
        download_chunk_size=4,
        strict_version_pin=False,
    )


@pytest.fixture
def client(app_config, fake_session):
    app = create_app(app_config, session=fake_session)
    app.testing = True
    return app.test_client()
