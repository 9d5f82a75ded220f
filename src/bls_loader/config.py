"""
Configuration Management for the BLS flat-file loader
Uses Pydantic Settings for type-safe configuration with environment variable support
"""
from pathlib import Path
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BLSSettings(BaseSettings):
    """Download, fallback and cache configuration"""
    base_url: str = Field('https://download.bls.gov/pub/time.series', alias='BLS_BASE_URL')
    timeout: int = Field(60, alias='BLS_TIMEOUT')
    use_fallback: bool = Field(True, alias='BLS_USE_FALLBACK')
    html_size_threshold: int = Field(10000, alias='BLS_HTML_SIZE_THRESHOLD')
    tolerate_aux_failures: bool = Field(True, alias='BLS_TOLERATE_AUX_FAILURES')

    # Sources outside the time.series archive
    qcew_base_url: str = Field('https://data.bls.gov/cew/data/api', alias='BLS_QCEW_BASE_URL')
    salt_url: str = Field('https://www.bls.gov/lau/stalt-moave.xlsx', alias='BLS_SALT_URL')

    # Local cache
    use_cache: bool = Field(False, alias='USE_BLS_CACHE')
    cache_dir: Optional[str] = Field(None, alias='BLS_CACHE_DIR')

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    @field_validator('base_url', 'qcew_base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')

    @field_validator('html_size_threshold', 'timeout')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError('must be a positive integer')
        return v

    def resolved_cache_dir(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser().resolve()
        return Path.home() / '.cache' / 'bls_loader'


class AppSettings(BaseSettings):
    """Main application settings"""
    log_level: str = Field('INFO', alias='LOG_LEVEL')

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f'log_level must be one of {valid_levels}')
        return v

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')


class Settings:
    """Centralized settings manager"""
    _bls: Optional[BLSSettings] = None
    _app: Optional[AppSettings] = None

    @property
    def bls(self) -> BLSSettings:
        if self._bls is None:
            self._bls = BLSSettings()  # type: ignore
        return self._bls

    @property
    def app(self) -> AppSettings:
        if self._app is None:
            self._app = AppSettings()  # type: ignore
        return self._app

    def reset(self):
        """Drop cached settings so the next access re-reads the environment"""
        self._bls = None
        self._app = None


# Global settings instance
settings = Settings()

# The archive rejects requests that do not look like they come from a browser
BLS_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7",
    "Accept-Encoding": "gzip, deflate",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
    "Referer": "https://download.bls.gov/pub/time.series/",
    "Sec-Ch-Ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
}

# Plain header set for the second attempt: no compression, no browser hints
FALLBACK_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "*/*",
    "Accept-Encoding": "identity",
}
