"""
Settings
========

Runtime configuration loaded from ``PGPMIME_*`` environment variables or a
local ``.env`` file. Services receive a ``Settings`` instance explicitly;
nothing below the server reads the environment on its own.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PGPMIME_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Engine
    gpg_binary: str = "gpg"
    gnupg_home: str | None = None
    engine_timeout_seconds: float | None = None  # None: a hung gpg hangs the call
    always_trust: bool = False
    scratch_dir: str | None = None  # None: system temp dir

    # Message handling
    host_line_ending: Literal["lf", "crlf"] = "lf"
    default_micalg: str = "pgp-sha256"
    max_nesting_depth: int = 6

    log_level: str = "INFO"

    @field_validator("gnupg_home", "scratch_dir", mode="before")
    @classmethod
    def _empty_path_to_none(cls, v: object) -> object:
        if v == "":
            return None
        return v

    @field_validator("max_nesting_depth")
    @classmethod
    def _validate_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_nesting_depth must be at least 1")
        return v

    @property
    def host_newline(self) -> bytes:
        return b"\r\n" if self.host_line_ending == "crlf" else b"\n"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
