"""Exceptions raised while downloading and assembling BLS flat files"""
from typing import Optional


class BLSLoaderError(Exception):
    pass


class FetchError(BLSLoaderError):
    """Primary (and fallback, when permitted) transport failed for a URL"""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{message} [{url}]")


class FormatError(BLSLoaderError):
    """Server answered with an HTML page instead of tab-delimited data"""

    def __init__(self, url: str, message: Optional[str] = None):
        self.url = url
        super().__init__(f"{message or 'Received an HTML page instead of data'} [{url}]")


class DatasetError(BLSLoaderError):
    """A survey directory could not be resolved into data/series/mapping files"""
