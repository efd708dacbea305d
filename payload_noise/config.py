"""
Settings for payload_noise, read from the process environment.

A `.env` file in the working directory (or any parent) is loaded first, so the
long-term secret can be provisioned there for local use.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError

KEY_ENV = "PAYLOAD_NOISE_KEY"
MAX_AGE_ENV = "PAYLOAD_NOISE_MAX_AGE_MS"
LOG_LEVEL_ENV = "PAYLOAD_NOISE_LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    key: Optional[str] = None
    max_age_ms: Optional[int] = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "Settings":
        '''
        Build settings from environment variables.
            Input: load_dotenv_file - also read a .env file (existing variables win)
            Output: Settings
        Raises ConfigurationError for a bad PAYLOAD_NOISE_MAX_AGE_MS or PAYLOAD_NOISE_LOG_LEVEL.
        A missing key is only an error once require_key() is called.
        '''
        if load_dotenv_file:
            load_dotenv(find_dotenv(usecwd=True))
        key = os.environ.get(KEY_ENV) or None

        max_age_ms = None
        raw_age = os.environ.get(MAX_AGE_ENV, "").strip()
        if raw_age:
            try:
                max_age_ms = int(raw_age)
            except ValueError as exc:
                raise ConfigurationError(f"{MAX_AGE_ENV} must be an integer, got {raw_age!r}") from exc
            if max_age_ms <= 0:
                raise ConfigurationError(f"{MAX_AGE_ENV} must be positive, got {max_age_ms}")

        log_level = os.environ.get(LOG_LEVEL_ENV, "WARNING").strip().upper() or "WARNING"
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigurationError(f"{LOG_LEVEL_ENV} is not a logging level: {log_level!r}")
        return cls(key=key, max_age_ms=max_age_ms, log_level=log_level)

    def require_key(self) -> str:
        ''' Return the long-term secret or raise ConfigurationError '''
        if not self.key:
            raise ConfigurationError(
                f"Encryption key is required. Set {KEY_ENV} environment variable or provide a key."
            )
        return self.key
