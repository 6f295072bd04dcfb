from __future__ import annotations

import argparse
import hashlib
import re
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests


DEFAULT_BASE_URL = "http://127.0.0.1:8080"

SEED_EXTENSIONS = [
    "redhat.vscode-yaml",
    "ms-python.python",
]

_DISPOSITION_RE = re.compile(r"attachment;\s*filename=(?P<name>[^;]+)", flags=re.IGNORECASE)


@dataclass
class Check:
    name: str
    ok: bool
    status: int
    detail: str


def eprint(*a: Any) -> None:
    print(*a, file=sys.stderr)


def sha256_bytes(b: bytes) -> str:
    h = hashlib.sha256()
    h.update(b)
    return h.hexdigest()


def split_ext_id(ext_id: str) -> Tuple[str, str]:
    s = (ext_id or "").strip()
    if "." not in s:
        raise ValueError(f"expected publisher.extension, got {ext_id!r}")
    publisher, extension = s.split(".", 1)
    if not publisher or not extension:
        raise ValueError(f"expected publisher.extension, got {ext_id!r}")
    return publisher, extension


def disposition_filename(header: Optional[str]) -> Optional[str]:
    m = _DISPOSITION_RE.search(header or "")
    if not m:
        return None
    return m.group("name").strip().strip('"')


def req(
    sess: requests.Session,
    url: str,
    *,
    expected: Tuple[int, ...],
    stream: bool = False,
    timeout: int = 120,
) -> requests.Response:
    r = sess.get(url, stream=stream, timeout=timeout)
    if r.status_code not in expected:
        try:
            body = r.text[:1200]
        except Exception:
            body = "<non-text>"
        r.close()
        raise RuntimeError(f"GET {url} -> {r.status_code}, expected {expected}. Body: {body}")
    return r


def check_extension(sess: requests.Session, base_url: str, ext_id: str) -> List[Check]:
    checks: List[Check] = []

    def ok(name: str, status: int, detail: str) -> None:
        checks.append(Check(name=name, ok=True, status=status, detail=detail))

    def bad(name: str, status: int, detail: str) -> None:
        checks.append(Check(name=name, ok=False, status=status, detail=detail))

    try:
        publisher, extension = split_ext_id(ext_id)
    except ValueError as exc:
        bad("parse extension id", 0, str(exc))
        return checks

    # 1) METADATA
    meta_url = f"{base_url}/{publisher}/{extension}"
    try:
        j: Dict[str, Any] = req(sess, meta_url, expected=(200,)).json()
        version = str(j.get("version") or "")
        versions = ((j.get("details") or {}).get("versions")) or []
        if not version:
            raise RuntimeError("response has no version")
        if versions and str(versions[0].get("version")) != version:
            raise RuntimeError(f"version {version} is not details.versions[0]")
        ok(f"GET /{publisher}/{extension}", 200, f"version={version}")
    except Exception as exc:
        bad(f"GET /{publisher}/{extension}", 0, f"{meta_url} :: {exc}")
        return checks

    # 2) DOWNLOAD VIA apiDownloadLink
    dl_url = str(j.get("apiDownloadLink") or "")
    try:
        r = req(sess, dl_url, expected=(200,), stream=True)
        try:
            want = f"{extension}-{version}.VSIX"
            got = disposition_filename(r.headers.get("Content-Disposition"))
            if got != want:
                raise RuntimeError(f"content-disposition filename={got!r} expected {want!r}")
            b = r.content
        finally:
            r.close()
        if len(b) < 4 or b[:2] != b"PK":
            raise RuntimeError("downloaded bytes are not a VSIX/zip")
        ok("GET apiDownloadLink", 200, f"bytes={len(b)} sha256={sha256_bytes(b)[:12]}…")
    except Exception as exc:
        bad("GET apiDownloadLink", 0, f"{dl_url} :: {exc}")

    return checks


def print_report(title: str, checks: List[Check]) -> bool:
    print(f"\n--- {title} ---")
    ok_all = True
    for c in checks:
        flag = "OK" if c.ok else "FAIL"
        print(f"[{flag}] {c.name} (status={c.status}) {c.detail}")
        if not c.ok:
            ok_all = False
    return ok_all


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Metadata + VSIX download checker for a running proxy.")
    ap.add_argument("--base-url", default=DEFAULT_BASE_URL, help=f"Target service base URL (default {DEFAULT_BASE_URL})")
    ap.add_argument("extensions", nargs="*", default=SEED_EXTENSIONS, help="publisher.extension ids to check")
    args = ap.parse_args(argv)

    base_url = args.base_url.rstrip("/")
    sess = requests.Session()

    overall_ok = True
    for ext_id in args.extensions:
        checks = check_extension(sess, base_url, ext_id)
        if not print_report(ext_id, checks):
            failed = [c.name for c in checks if not c.ok]
            eprint(f"ERROR {ext_id}: failed checks: {', '.join(failed)}")
            overall_ok = False

    return 0 if overall_ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
