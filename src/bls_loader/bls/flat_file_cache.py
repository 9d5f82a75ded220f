"""
Local cache for BLS flat files keyed on the server's Last-Modified time

A HEAD request decides whether the cached copy is still current. The file is
downloaded again when it is missing, its size differs from the server's
Content-Length, or it is older than the server's Last-Modified header. After
a download the local mtime is set to Last-Modified so the next comparison is
exact.
"""
import os
import logging
import tempfile
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Optional, Union

from bls_loader.config import settings
from bls_loader.bls.exceptions import FetchError
from bls_loader.bls.flat_file_client import FlatFileClient, FetchedBody

log = logging.getLogger(__name__)

MTIME_TOLERANCE_SEC = 1.0


def default_cache_dir() -> Path:
    """BLS_CACHE_DIR if set, otherwise ~/.cache/bls_loader"""
    return settings.bls.resolved_cache_dir()


def cache_enabled() -> bool:
    """USE_BLS_CACHE switches caching on for every fetch"""
    return settings.bls.use_cache


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    # RFC 1123, e.g. "Thu, 18 Dec 2025 13:30:00 GMT"
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        log.warning(f"Unparseable Last-Modified header: {value!r}")
        return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


class FlatFileCache:
    """
    Cached access to archive files.

    Usage:
        cache = FlatFileCache(cache_dir="data/bls_cache")
        path = cache.get("https://download.bls.gov/pub/time.series/jt/jt.series")
    """

    def __init__(self, cache_dir: Optional[Union[str, Path]] = None, client: Optional[FlatFileClient] = None):
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self.client = client or FlatFileClient()

    def path_for(self, url: str) -> Path:
        return self.cache_dir / url.rstrip("/").split("/")[-1]

    def get(self, url: str) -> Path:
        """
        Local path of an up-to-date copy of url, downloading it if needed

        Raises:
            FetchError: the server is unreachable and nothing is cached
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        local_path = self.path_for(url)

        try:
            head = self.client.head(url)
        except FetchError:
            if local_path.exists():
                log.warning(f"Could not reach BLS server; using existing cached file {local_path}")
                return local_path
            raise

        remote_mtime = parse_http_date(head.headers.get("Last-Modified"))
        # Content-Length of an encoded response is the compressed size
        remote_size = None
        if not head.headers.get("Content-Encoding"):
            remote_size = _parse_int(head.headers.get("Content-Length"))

        if local_path.exists() and self.is_current(local_path, remote_size, remote_mtime):
            log.info(f"For {url}: cached local file is up to date")
            return local_path

        log.info(f"For {url}: cached file missing or outdated, downloading")
        body = self.client.fetch(url)
        self._write_atomic(local_path, body.content)

        if remote_mtime is not None:
            ts = remote_mtime.timestamp()
            os.utime(local_path, (ts, ts))
        return local_path

    def fetch(self, url: str) -> FetchedBody:
        path = self.get(url)
        return FetchedBody(url=url, content=path.read_bytes(), transport="cache")

    @staticmethod
    def is_current(local_path: Path, remote_size: Optional[int], remote_mtime: Optional[datetime]) -> bool:
        """
        Missing size or mtime information is not held against the local copy.
        """
        stat = local_path.stat()
        size_matches = remote_size is None or stat.st_size == remote_size
        if remote_mtime is None:
            return size_matches
        return size_matches and stat.st_mtime >= remote_mtime.timestamp() - MTIME_TOLERANCE_SEC

    def _write_atomic(self, path: Path, content: bytes):
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{path.name}.", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise
