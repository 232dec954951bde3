"""Off-chain configuration for the confidential exchange."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``FHESWAP_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FHESWAP_",
        case_sensitive=False,
    )

    # ── Contracts ────────────────────────────────────────────────────────
    executor_contract: str = "con_fhe_executor"
    usdc_contract: str = "con_fusdc"
    zama_contract: str = "con_fzama"
    swap_contract: str = "con_fhe_swap"

    # ── Disclosure ───────────────────────────────────────────────────────
    decrypt_validity_days: int = Field(default=10, ge=1)
    decrypt_max_validity_days: int = Field(default=365, ge=1)
    disclosure_ttl_seconds: int = Field(default=0, ge=0)  # 0 = standing grants
    reserve_disclosure: Literal["open", "operator"] = "open"

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
