from __future__ import annotations

import logging
from typing import BinaryIO, Dict, Iterator, Optional

import requests

from services.errors import FetchError
from services.pipeline import ResolvedItem


VSIX_CONTENT_TYPE = "application/zip"
DEFAULT_CHUNK_SIZE = 64 * 1024

_log = logging.getLogger("marketplace")


class DownloadStream:
    """Open upstream VSIX download, ready to be relayed chunk by chunk.

    Iterating yields the upstream body verbatim. The upstream response is
    released when iteration finishes or fails, or when ``close()`` is called
    (WSGI servers call it when the client goes away).
    """

    def __init__(self, item: ResolvedItem, resp: requests.Response, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.item = item
        self._resp = resp
        self._chunk_size = chunk_size
        self._closed = False
        self.bytes_sent = 0

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Disposition": f"attachment; filename={self.item.filename}",
            "Content-Type": VSIX_CONTENT_TYPE,
        }

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._resp.iter_content(chunk_size=self._chunk_size):
                if not chunk:
                    continue
                self.bytes_sent += len(chunk)
                yield chunk
        except requests.RequestException:
            # headers are already out; all that is left is to cut the stream
            _log.exception(
                "download_interrupted url=%s bytes=%s",
                self.item.download_link,
                self.bytes_sent,
            )
            raise
        finally:
            self.close()

        _log.info(
            "download_done publisher=%s extension=%s version=%s bytes=%s",
            self.item.publisher,
            self.item.extension,
            self.item.version,
            self.bytes_sent,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._resp.close()


class DownloadProxy:
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._http = session or requests
        self._timeout = timeout
        self._chunk_size = chunk_size

    def open(self, item: ResolvedItem) -> DownloadStream:
        # Upstream status is known before any response header gets committed
        url = item.download_link
        try:
            resp = self._http.get(url, stream=True, timeout=self._timeout)
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        if not 200 <= resp.status_code < 300:
            resp.close()
            raise FetchError(url, "non-success status", status=resp.status_code)
        return DownloadStream(item, resp, chunk_size=self._chunk_size)

    def stream(self, item: ResolvedItem, sink: BinaryIO) -> int:
        ds = self.open(item)
        try:
            for chunk in ds:
                sink.write(chunk)
        finally:
            ds.close()
        return ds.bytes_sent
