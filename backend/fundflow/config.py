"""Environment-driven configuration for the fund flow tracer."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

LOGGER = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111

DEFAULT_CORS: Tuple[str, ...] = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)

USTT_CONTRACT_ADDRESS = "0x349920b4d3Ca271Aa88988da0246c029a15671eA"


@dataclass(frozen=True)
class TokenSpec:
    """Scan parameters for a traceable asset."""

    symbol: str
    contract_address: Optional[str]
    decimals: int
    chunk_size: int
    cache_depth: int

    @property
    def is_native(self) -> bool:
        return self.contract_address is None


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    rpc_endpoints: Tuple[str, ...]
    chain_id: int
    tick_interval: float
    cooldown_penalty: float
    cooldown_step: float
    validation_timeout: float
    watchlist_url: str
    watchlist_timeout: float
    cors_allow_origins: Tuple[str, ...]
    tokens: Dict[str, TokenSpec]

    def token(self, symbol: str) -> TokenSpec:
        """Return the token specification for a selector such as ``ETH``."""
        if not symbol:
            raise ValueError("Token selector cannot be empty")
        spec = self.tokens.get(symbol.strip().upper())
        if spec is None:
            raise ValueError(f"Unsupported token: {symbol}")
        return spec


def _split_list(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def load_settings() -> Settings:
    """Build settings from the current environment."""
    tokens = {
        "ETH": TokenSpec(
            symbol="ETH",
            contract_address=None,
            decimals=18,
            chunk_size=_env_int("FUNDFLOW_NATIVE_CHUNK_SIZE", 13, minimum=1),
            cache_depth=_env_int("FUNDFLOW_NATIVE_CACHE_DEPTH", 300),
        ),
        "USTT": TokenSpec(
            symbol="USTT",
            contract_address=USTT_CONTRACT_ADDRESS,
            decimals=18,
            chunk_size=_env_int("FUNDFLOW_TOKEN_CHUNK_SIZE", 400, minimum=1),
            cache_depth=0,
        ),
    }

    cors = _split_list(os.getenv("CORS_ALLOW_ORIGINS")) or DEFAULT_CORS

    return Settings(
        rpc_endpoints=_split_list(os.getenv("FUNDFLOW_RPC_ENDPOINTS")),
        chain_id=_env_int("FUNDFLOW_CHAIN_ID", SEPOLIA_CHAIN_ID, minimum=1),
        tick_interval=_env_float("FUNDFLOW_TICK_INTERVAL", 1.1),
        cooldown_penalty=_env_float("FUNDFLOW_COOLDOWN_PENALTY", 2.0),
        cooldown_step=_env_float("FUNDFLOW_COOLDOWN_STEP", 1.0),
        validation_timeout=_env_float("FUNDFLOW_VALIDATION_TIMEOUT", 5.0),
        watchlist_url=os.getenv("FUNDFLOW_WATCHLIST_URL", "http://localhost:4500/check-address"),
        watchlist_timeout=_env_float("FUNDFLOW_WATCHLIST_TIMEOUT", 10.0),
        cors_allow_origins=cors,
        tokens=tokens,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    settings = load_settings()
    LOGGER.info(
        "Loaded settings (chain_id=%d, endpoints=%d, tick=%.2fs)",
        settings.chain_id,
        len(settings.rpc_endpoints),
        settings.tick_interval,
    )
    return settings


__all__ = ["Settings", "TokenSpec", "get_settings", "load_settings"]
