"""Bounded-parallel download of zone images."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import requests

from zonectl.constants import IMAGE_CHUNK_SIZE, IMAGE_PROGRESS_STEP, IMAGE_REQUEST_TIMEOUT, IMAGE_USER_AGENT
from zonectl.exceptions import ManagerError
from zonectl.models import FetchResult, ImageFile
from zonectl.utils import ensure_directory, log, pretty_size


class DownloadProgress:
    """Log one progress line each time a download crosses another ``step`` percent."""

    def __init__(self, label: str, total: Optional[int], step: int = IMAGE_PROGRESS_STEP) -> None:
        self.label = label
        self.total = total
        self.step = step
        self.downloaded = 0
        self.started = time.time()
        self._next = step

    @property
    def elapsed(self) -> float:
        return time.time() - self.started

    def update(self, size: int) -> None:
        self.downloaded += size
        if not self.total:
            return
        pct = self.downloaded * 100 / self.total
        if pct < self._next:
            return
        while self._next <= pct:
            self._next += self.step
        speed = self.downloaded / self.elapsed if self.elapsed > 0 else 0
        log(
            "INFO",
            f"{self.label}: {pct:5.1f}% {pretty_size(self.downloaded, '{:.1f}{}')}"
            f"/{pretty_size(self.total, '{:.1f}{}')} ({pretty_size(speed, '{:.1f}{}')}/s)",
        )


def fetch_image(image: ImageFile, session: Optional[requests.Session] = None) -> FetchResult:
    """Download one image; failures are reported in the result rather than raised."""
    getter = session or requests
    log("DEBUG", f"downloading {image.url}...")
    try:
        response = getter.get(
            image.url,
            stream=True,
            timeout=IMAGE_REQUEST_TIMEOUT,
            headers={"User-Agent": IMAGE_USER_AGENT},
        )
    except requests.RequestException as exc:
        return FetchResult(image, False, f"Failed to download file from {image.url} - {exc}")

    with response:
        if not response.ok:
            return FetchResult(
                image, False, f"Failed to download file from {image.url} - {response.status_code} {response.reason}"
            )
        total = response.headers.get("Content-Length")
        progress = DownloadProgress(image.path.name, int(total) if str(total).isdigit() else None)
        tmp_path = Path(f"{image.path}.part")
        try:
            ensure_directory(image.path.parent)
            with open(tmp_path, "wb") as fh:
                for chunk in response.iter_content(chunk_size=IMAGE_CHUNK_SIZE):
                    fh.write(chunk)
                    progress.update(len(chunk))
            tmp_path.replace(image.path)
        except (OSError, requests.RequestException) as exc:
            tmp_path.unlink(missing_ok=True)
            return FetchResult(image, False, f"Failed to write file to {image.path}: {exc}")
    log("SUCCESS", f"Downloaded {image.url} ({pretty_size(progress.downloaded)} in {progress.elapsed:.1f}s)")
    return FetchResult(image, True)


def fetch_images(
    images: Sequence[ImageFile],
    max_workers: int = 4,
    fatal: bool = False,
    session_factory: Callable[[], requests.Session] = requests.Session,
) -> List[FetchResult]:
    """Download all images concurrently; one failure never stops the others.

    Every worker thread opens its own session from ``session_factory``. With
    ``fatal`` a ManagerError listing every failure is raised once all
    downloads have finished.
    """
    if not images:
        return []

    local = threading.local()
    sessions: List[requests.Session] = []

    def worker(image: ImageFile) -> FetchResult:
        session = getattr(local, "session", None)
        if session is None:
            session = local.session = session_factory()
            sessions.append(session)
        return fetch_image(image, session)

    try:
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(images)))) as pool:
            results = list(pool.map(worker, images))
    finally:
        for session in sessions:
            session.close()

    failures = [result for result in results if not result.ok]
    for result in failures:
        log("ERROR", result.error or f"Failed to download {result.image.url}")
    if failures and fatal:
        raise ManagerError("\n".join(result.error or result.image.url for result in failures))
    return results
