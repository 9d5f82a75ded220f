# flat_file_client.py
from __future__ import annotations
import re
import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from bls_loader.config import settings, BLS_HEADERS, FALLBACK_HEADERS
from bls_loader.bls.exceptions import FetchError, FormatError

log = logging.getLogger(__name__)

# Only the head of the body is inspected for error-page markers
HTML_SNIFF_BYTES = 10240
_HTML_MARKERS = re.compile(rb"<!doctype|<html", re.IGNORECASE)


@dataclass
class FetchedBody:
    """Raw bytes of one flat file plus the path that produced them"""
    url: str
    content: bytes
    transport: str  # 'primary', 'fallback' or 'cache'
    last_modified: Optional[str] = None


def looks_like_html(content: bytes, size_threshold: int) -> bool:
    """True for short bodies that are recognisably an HTML document."""
    if len(content) >= size_threshold:
        return False
    return bool(_HTML_MARKERS.search(content[:HTML_SNIFF_BYTES]))


def decode_body(content: bytes) -> str:
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        # Older series files carry Latin-1 area and footnote text
        text = content.decode("latin-1")
    return text.lstrip("\ufeff")


class FlatFileClient:
    """
    Client for the BLS time-series flat-file archive.
    Archive root: https://download.bls.gov/pub/time.series/

    Key points handled:
      - Every request carries a browser-like header set; the archive answers
        403 to bare clients.
      - One fallback attempt through a second session with a plain header
        set when the primary request fails or returns an HTML error page.
      - No retry loop beyond that single fallback.

    Usage:
      client = FlatFileClient()
      body = client.fetch("https://download.bls.gov/pub/time.series/jt/jt.series")
      lines = client.read_text("https://download.bls.gov/pub/time.series/jt/jt.txt")
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        fallback_session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
        use_fallback: Optional[bool] = None,
        html_size_threshold: Optional[int] = None,
    ):
        cfg = settings.bls
        self.session = session or requests.Session()
        self.session.headers.update(BLS_HEADERS)
        self.fallback_session = fallback_session or requests.Session()
        self.fallback_session.headers.update(FALLBACK_HEADERS)

        self.timeout = timeout if timeout is not None else cfg.timeout
        self.use_fallback = cfg.use_fallback if use_fallback is None else use_fallback
        self.html_size_threshold = html_size_threshold or cfg.html_size_threshold

    # ---------------------- Public methods ---------------------- #
    def fetch(self, url: str) -> FetchedBody:
        """
        GET one flat file.

        Raises:
            FetchError: primary failed and the fallback failed or is disabled
            FormatError: an HTML page came back and no fallback remains
        """
        try:
            resp = self._get(self.session, url)
        except requests.RequestException as e:
            if not self.use_fallback:
                raise FetchError(url, f"Download failed: {e}") from e
            log.warning(f"Primary download failed for {url} ({e}); trying fallback")
            return self._fetch_fallback(url)

        if looks_like_html(resp.content, self.html_size_threshold):
            if not self.use_fallback:
                raise FormatError(url)
            log.warning(f"Received an HTML page for {url}; trying fallback")
            return self._fetch_fallback(url)

        return FetchedBody(
            url=url,
            content=resp.content,
            transport="primary",
            last_modified=resp.headers.get("Last-Modified"),
        )

    def head(self, url: str) -> requests.Response:
        """HEAD request used for cache freshness checks."""
        try:
            resp = self.session.head(url, timeout=self.timeout, allow_redirects=True)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(url, f"HEAD request failed: {e}") from e
        return resp

    def read_text(self, url: str) -> List[str]:
        """Plain text resources such as survey overviews, one string per line."""
        body = self.fetch(url)
        return decode_body(body.content).split("\n")

    def list_directory(self, url: str) -> List[str]:
        """
        File names linked from an archive directory listing.

        The listing is itself HTML, so it skips the error-page check.
        """
        try:
            resp = self._get(self.session, url)
        except requests.RequestException as e:
            raise FetchError(url, f"Could not access directory listing: {e}") from e

        soup = BeautifulSoup(resp.text, "html.parser")
        names = []
        for link in soup.find_all("a"):
            href = link.get("href")
            if not href or href.startswith("?") or href.endswith("/"):
                continue
            # hrefs look like /pub/time.series/jt/jt.series
            name = urljoin(url, href).rstrip("/").split("/")[-1]
            if name:
                names.append(name)
        return names

    # ---------------------- Internals ---------------------- #
    def _get(self, session: requests.Session, url: str) -> requests.Response:
        resp = session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp

    def _fetch_fallback(self, url: str) -> FetchedBody:
        try:
            resp = self._get(self.fallback_session, url)
        except requests.RequestException as e:
            raise FetchError(url, f"Download failed on primary and fallback transport: {e}") from e

        if looks_like_html(resp.content, self.html_size_threshold):
            raise FormatError(url, "Fallback transport also returned an HTML page")

        log.info(f"Fallback download succeeded for {url}")
        return FetchedBody(
            url=url,
            content=resp.content,
            transport="fallback",
            last_modified=resp.headers.get("Last-Modified"),
        )
