"""
AC Trading Client — Configuration
Credentials and endpoints come from the environment; everything else has a default.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ExchangeConfig:
    api_key: str = ""
    api_secret: str = ""
    passphrase: str = ""
    secret_encoding: str = "base64"     # "base64" or "raw"
    sandbox: bool = False               # PRODUCTION
    base_url_mainnet: str = "https://api.exchange.example.com"
    base_url_sandbox: str = "https://api-sandbox.exchange.example.com"
    base_url_override: Optional[str] = None
    timeout_sec: float = 30.0
    user_agent: str = "ac-trading-client"

    @property
    def base_url(self) -> str:
        if self.base_url_override:
            return self.base_url_override
        return self.base_url_sandbox if self.sandbox else self.base_url_mainnet

    def missing_credentials(self) -> List[str]:
        """Names of the env vars that still need a value."""
        missing = []
        if not self.api_key:
            missing.append("AC_API_KEY")
        if not self.api_secret:
            missing.append("AC_API_SECRET")
        if not self.passphrase:
            missing.append("AC_API_PASSPHRASE")
        return missing

    def validate(self):
        missing = self.missing_credentials()
        if missing:
            raise ValueError(f"Missing required env var(s): {', '.join(missing)}")
        if self.secret_encoding not in ("base64", "raw"):
            raise ValueError(
                f"AC_SECRET_ENCODING must be 'base64' or 'raw', got {self.secret_encoding!r}"
            )
        if self.timeout_sec <= 0:
            raise ValueError("AC_TIMEOUT_SEC must be > 0")


@dataclass
class ClientConfig:
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load config with environment variable overrides."""
        config = cls()
        config.exchange.api_key = os.getenv("AC_API_KEY", "")
        config.exchange.api_secret = os.getenv("AC_API_SECRET", "")
        config.exchange.passphrase = os.getenv("AC_API_PASSPHRASE", "")
        config.exchange.secret_encoding = os.getenv("AC_SECRET_ENCODING", "base64").lower()
        config.exchange.sandbox = os.getenv("AC_SANDBOX", "false").lower() == "true"
        config.exchange.base_url_override = os.getenv("AC_API_URL") or None
        timeout_raw = os.getenv("AC_TIMEOUT_SEC", "30")
        try:
            config.exchange.timeout_sec = float(timeout_raw)
        except ValueError:
            raise ValueError(f"AC_TIMEOUT_SEC must be a number, got {timeout_raw!r}") from None
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        config.log_file = os.getenv("LOG_FILE") or None
        return config
