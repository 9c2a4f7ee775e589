from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import requests

from ..errors import CancelledError, TransientError

logger = logging.getLogger(__name__)

USER_AGENT = "mobiledev-setup/0.1"
CHUNK_SIZE = 1024 * 256
CONNECTIVITY_URL = "https://dl.google.com/"

ProgressCallback = Callable[[int, Optional[int]], None]


def is_online(url: str = CONNECTIVITY_URL, *, timeout: float = 5.0) -> bool:
    """Best-effort online check."""

    try:
        r = requests.head(url, timeout=timeout, allow_redirects=True, headers={"User-Agent": USER_AGENT})
        return r.status_code < 500
    except requests.RequestException as e:
        logger.debug("Connectivity probe failed: %s", e)
        return False


def download(
    url: str,
    dest: Path,
    *,
    on_progress: Optional[ProgressCallback] = None,
    timeout: float = 60.0,
    cancel: Optional[threading.Event] = None,
) -> Path:
    """Download url to dest, resuming a previous `<dest>.part` when possible.

    The server may ignore the Range request (200 instead of 206); the partial
    file is then overwritten. dest only appears once the body is complete.
    Network failures raise TransientError so callers can retry. Setting
    `cancel` stops between chunks with CancelledError; the partial file is kept.
    """

    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    part = dest.with_name(dest.name + ".part")

    headers = {"User-Agent": USER_AGENT}
    offset = part.stat().st_size if part.exists() else 0
    if offset:
        headers["Range"] = f"bytes={offset}-"
        logger.info("Resuming %s at byte %d", dest.name, offset)

    logger.info("Downloading %s -> %s", url, dest)
    try:
        with requests.get(url, headers=headers, stream=True, timeout=timeout, allow_redirects=True) as r:
            if r.status_code == 416:
                # The partial file does not match the remote object any more.
                part.unlink(missing_ok=True)
                raise TransientError(f"Range not satisfiable for {url}; restarting download")
            r.raise_for_status()

            length = r.headers.get("Content-Length")
            if offset and r.status_code == 206:
                mode = "ab"
                total = int(length) + offset if length else None
            else:
                mode = "wb"
                offset = 0
                total = int(length) if length else None

            done = offset
            with open(part, mode) as f:
                for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                    if cancel is not None and cancel.is_set():
                        raise CancelledError(f"Download cancelled at {done} bytes: {url}")
                    if not chunk:
                        continue
                    f.write(chunk)
                    done += len(chunk)
                    if on_progress is not None:
                        on_progress(done, total)
    except requests.RequestException as e:
        raise TransientError(f"Download failed: {url}: {e}") from e

    if total is not None and done < total:
        raise TransientError(f"Download truncated at {done}/{total} bytes: {url}")

    part.replace(dest)
    logger.info("Downloaded %s (%d bytes)", dest.name, done)
    return dest
