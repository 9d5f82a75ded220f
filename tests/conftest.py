"""
Pytest configuration and shared fixtures.

No test touches the network: HTTP is replaced by requests.Response objects
built in memory, and multi-file tests use an in-memory archive client.
"""

import pytest
import requests

from bls_loader.config import settings
from bls_loader.bls.exceptions import FetchError
from bls_loader.bls.flat_file_client import FetchedBody

BLS_ENV_VARS = (
    "BLS_BASE_URL",
    "BLS_TIMEOUT",
    "BLS_USE_FALLBACK",
    "BLS_HTML_SIZE_THRESHOLD",
    "BLS_TOLERATE_AUX_FAILURES",
    "BLS_QCEW_BASE_URL",
    "BLS_SALT_URL",
    "USE_BLS_CACHE",
    "BLS_CACHE_DIR",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Every test starts from default settings, whatever the shell exports."""
    for name in BLS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    settings.reset()
    yield
    settings.reset()


def build_response(content=b"", status=200, headers=None, url="https://download.bls.gov/pub/time.series/xx/xx.series"):
    if isinstance(content, str):
        content = content.encode("utf-8")
    resp = requests.Response()
    resp.status_code = status
    resp._content = content
    resp.url = url
    resp.encoding = "utf-8"
    resp.headers.update(headers or {})
    return resp


@pytest.fixture
def make_response():
    """Factory for in-memory requests.Response objects."""
    return build_response


class ArchiveClient:
    """Stands in for FlatFileClient, serving files from a dict keyed by URL."""

    def __init__(self, files=None, listings=None, failures=None, heads=None):
        self.files = dict(files or {})
        self.listings = dict(listings or {})
        self.failures = set(failures or ())
        self.heads = dict(heads or {})
        self.head_requests = []
        self.fetched = []

    def fetch(self, url):
        self.fetched.append(url)
        if url in self.failures or url not in self.files:
            raise FetchError(url, "Download failed: 404 Client Error")
        content = self.files[url]
        if isinstance(content, str):
            content = content.encode("utf-8")
        return FetchedBody(url=url, content=content, transport="primary")

    def head(self, url):
        self.head_requests.append(url)
        if url not in self.heads:
            raise FetchError(url, "HEAD request failed")
        return build_response(headers=self.heads[url], url=url)

    def list_directory(self, url):
        if url not in self.listings:
            raise FetchError(url, "Could not access directory listing")
        return list(self.listings[url])

    def read_text(self, url):
        return self.fetch(url).content.decode("utf-8").split("\n")


@pytest.fixture
def archive_client():
    """Factory for in-memory archive clients."""
    return ArchiveClient
