from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

MAX_PAGE_SIZE = 100


class Environment(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff for transient failures.

    ``attempts`` counts the first try, so the default of 4 means at most three
    retries. Waits grow from ``initial`` seconds, doubling up to ``max_wait``,
    plus up to ``jitter`` seconds of random noise.
    """

    attempts: int = 4
    initial: float = 0.5
    max_wait: float = 4.0
    jitter: float = 0.5

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if min(self.initial, self.max_wait, self.jitter) < 0:
            raise ValueError("retry waits must not be negative")


def _build_base_urls() -> Dict[Environment, str]:
    """Load API base URLs from environment variables."""
    return {
        Environment.SANDBOX: os.getenv("FINACCESS_SANDBOX_URL", "https://sandbox.api.starkinfra.com/v2"),
        Environment.PRODUCTION: os.getenv("FINACCESS_PRODUCTION_URL", "https://api.starkinfra.com/v2"),
    }


class Settings:
    """Runtime settings shared by every client instance."""

    def __init__(self) -> None:
        self.environment: Environment = Environment(os.getenv("FINACCESS_ENVIRONMENT", "sandbox"))
        self.base_urls: Dict[Environment, str] = _build_base_urls()
        self.timeout: float = float(os.getenv("FINACCESS_TIMEOUT", "20"))
        self.connect_timeout: float = float(os.getenv("FINACCESS_CONNECT_TIMEOUT", "5"))
        self.page_size: int = min(int(os.getenv("FINACCESS_PAGE_SIZE", str(MAX_PAGE_SIZE))), MAX_PAGE_SIZE)
        self.retry_attempts: int = int(os.getenv("FINACCESS_RETRY_ATTEMPTS", "4"))
        self.retry_initial: float = float(os.getenv("FINACCESS_RETRY_INITIAL", "0.5"))
        self.retry_max: float = float(os.getenv("FINACCESS_RETRY_MAX", "4"))
        self.retry_jitter: float = float(os.getenv("FINACCESS_RETRY_JITTER", "0.5"))
        self.public_key_limit: int = int(os.getenv("FINACCESS_PUBLIC_KEY_LIMIT", "2"))
        self.user_agent: str = os.getenv("FINACCESS_USER_AGENT", "finaccess-python/0.1.0")
        if self.page_size < 1:
            raise ValueError("FINACCESS_PAGE_SIZE must be at least 1")

    def base_url(self, environment: Optional[Union[Environment, str]] = None) -> str:
        env = Environment(environment) if environment is not None else self.environment
        return self.base_urls[env].rstrip("/")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.retry_attempts,
            initial=self.retry_initial,
            max_wait=self.retry_max,
            jitter=self.retry_jitter,
        )


settings = Settings()
