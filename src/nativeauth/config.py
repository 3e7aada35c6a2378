"""Configuration for the native auth engine.

Values come from constructor arguments or, through ``AuthConfig.from_env``,
from ``NATIVEAUTH_*`` environment variables (a ``.env`` file is loaded first
when present).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from nativeauth.auth.primitives.keys import KeyDerivationParams

DEFAULT_STORE_PATH = Path.home() / ".nativeauth" / "auth.json"
DEFAULT_REDIRECT_URI = "nativeauth://auth/callback"


@dataclass
class AuthConfig:
    store_path: Path = DEFAULT_STORE_PATH
    redirect_uri: str = DEFAULT_REDIRECT_URI
    authorization_endpoint: str | None = None
    client_id: str | None = None
    scope: str | None = None
    session_ttl: timedelta = timedelta(minutes=10)
    authenticated_session_ttl: timedelta = timedelta(hours=24)
    sweep_interval: float = 60.0  # seconds, 0 disables the sweeper
    kdf_params: KeyDerivationParams = field(default_factory=KeyDerivationParams)

    @property
    def callback_scheme(self) -> str:
        return self.redirect_uri.split(":", 1)[0]

    @classmethod
    def from_env(cls, env_file: str | os.PathLike | None = None) -> AuthConfig:
        """Build a config from the environment.

        Args:
            env_file: Optional .env file to load before reading variables.
                Already-set environment variables take precedence.
        """
        load_dotenv(env_file)

        defaults = cls()
        kdf_defaults = defaults.kdf_params

        def get_int(name: str, default: int) -> int:
            value = os.getenv(name)
            return int(value) if value else default

        def get_float(name: str, default: float) -> float:
            value = os.getenv(name)
            return float(value) if value else default

        return cls(
            store_path=Path(
                os.getenv("NATIVEAUTH_STORE_PATH", str(defaults.store_path))
            ).expanduser(),
            redirect_uri=os.getenv("NATIVEAUTH_REDIRECT_URI", defaults.redirect_uri),
            authorization_endpoint=os.getenv("NATIVEAUTH_AUTHORIZATION_ENDPOINT"),
            client_id=os.getenv("NATIVEAUTH_CLIENT_ID"),
            scope=os.getenv("NATIVEAUTH_SCOPE"),
            session_ttl=timedelta(
                seconds=get_int(
                    "NATIVEAUTH_SESSION_TTL",
                    int(defaults.session_ttl.total_seconds()),
                )
            ),
            authenticated_session_ttl=timedelta(
                seconds=get_int(
                    "NATIVEAUTH_AUTHENTICATED_SESSION_TTL",
                    int(defaults.authenticated_session_ttl.total_seconds()),
                )
            ),
            sweep_interval=get_float(
                "NATIVEAUTH_SWEEP_INTERVAL", defaults.sweep_interval
            ),
            kdf_params=KeyDerivationParams(
                time_cost=get_int("NATIVEAUTH_KDF_TIME_COST", kdf_defaults.time_cost),
                memory_cost=get_int(
                    "NATIVEAUTH_KDF_MEMORY_COST", kdf_defaults.memory_cost
                ),
                parallelism=get_int(
                    "NATIVEAUTH_KDF_PARALLELISM", kdf_defaults.parallelism
                ),
            ),
        )
