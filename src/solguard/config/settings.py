"""
Toolkit configuration.

Layers, lowest to highest:
    defaults -> settings TOML -> .env / process environment (SOLGUARD__ prefix)

Nested keys use `__` in env names, e.g. SOLGUARD__RPC__URL or
SOLGUARD__QUOTE__MAX_ATTEMPTS. Every value that replaces an earlier layer is
recorded as an OverrideRecord.

load_config() is the only function that reads os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import base58
import toml
from dotenv import load_dotenv
from loguru import logger
from solders.keypair import Keypair

from solguard.codec.registry import SchemaRegistry
from solguard.engines.execution.adapters.jupiter_adapter import JupiterConfig, RetryPolicy
from solguard.programs import BUILTIN_IDLS

DEFAULT_ENV_PREFIX = "SOLGUARD__"
COMMITMENTS = ("processed", "confirmed", "finalized")

DEFAULTS: Dict[str, Any] = {
    "log_level": "INFO",
    "rpc": {
        "url": "https://api.mainnet-beta.solana.com",
        "confirm_timeout_seconds": 60.0,
        "commitment": "processed",
    },
    "jupiter": {
        "base_url": "https://quote-api.jup.ag/v6",
        "http_timeout_seconds": 30.0,
        "default_slippage_bps": 50,
    },
    "quote": {
        "max_attempts": 3,
        "stale_delay_seconds": 0.5,
        "error_delay_seconds": 2.0,
    },
    "idl": {},
}


@dataclass
class OverrideRecord:
    key: str
    source: str
    old: Any
    new: Any


@dataclass(frozen=True)
class ToolkitConfig:
    rpc_url: str = DEFAULTS["rpc"]["url"]
    jupiter_base_url: str = DEFAULTS["jupiter"]["base_url"]
    http_timeout_seconds: float = 30.0
    confirm_timeout_seconds: float = 60.0
    commitment: str = "processed"
    quote_max_attempts: int = 3
    quote_stale_delay_seconds: float = 0.5
    quote_error_delay_seconds: float = 2.0
    default_slippage_bps: int = 50
    idl_paths: Dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"
    overrides: Tuple[OverrideRecord, ...] = field(default=(), compare=False)
    loaded_files: Tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self):
        if not self.rpc_url.startswith(("http://", "https://")):
            raise ValueError(f"rpc_url must be an http(s) URL, got {self.rpc_url!r}")
        if not self.jupiter_base_url.startswith(("http://", "https://")):
            raise ValueError(f"jupiter_base_url must be an http(s) URL, got {self.jupiter_base_url!r}")
        if self.http_timeout_seconds <= 0 or self.confirm_timeout_seconds <= 0:
            raise ValueError("timeouts must be positive")
        if self.commitment not in COMMITMENTS:
            raise ValueError(f"commitment must be one of {COMMITMENTS}, got {self.commitment!r}")
        if self.quote_max_attempts < 1:
            raise ValueError("quote.max_attempts must be >= 1")
        if self.quote_stale_delay_seconds < 0 or self.quote_error_delay_seconds < 0:
            raise ValueError("quote delays must be non-negative")
        if not 1 <= self.default_slippage_bps <= 10_000:
            raise ValueError(f"default_slippage_bps must be in [1, 10000], got {self.default_slippage_bps}")

    def jupiter_config(self) -> JupiterConfig:
        return JupiterConfig(
            base_url=self.jupiter_base_url,
            http_timeout=self.http_timeout_seconds,
            default_slippage_bps=self.default_slippage_bps,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.quote_max_attempts,
            stale_delay=self.quote_stale_delay_seconds,
            error_delay=self.quote_error_delay_seconds,
        )

    def log_summary(self) -> None:
        logger.info(f"CONFIG | files={', '.join(self.loaded_files) or '<none>'}")
        for o in self.overrides:
            logger.info(f"CONFIG | override | key={o.key} | source={o.source}")
        logger.info(
            f"CONFIG | rpc={self.rpc_url} | commitment={self.commitment} | jupiter={self.jupiter_base_url} | "
            f"slippage={self.default_slippage_bps}bps | idls={len(self.idl_paths)}"
        )


# =============================================================================
# LOADING
# =============================================================================

def load_config(
    settings_path: Optional[Union[str, Path]] = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    dotenv_path: Optional[Union[str, Path]] = None,
) -> ToolkitConfig:
    """Build a ToolkitConfig from defaults, an optional TOML file and the environment."""
    layers: List[Tuple[Dict[str, Any], str]] = []
    loaded_files: List[str] = []

    if settings_path:
        path = Path(settings_path)
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                layers.append((toml.load(f), path.name))
            loaded_files.append(path.name)
        else:
            logger.warning(f"CONFIG | settings file not found | path={path}")

    # .env never overrides variables already set in the process
    if dotenv_path is not None:
        load_dotenv(dotenv_path, override=False)
    else:
        load_dotenv(override=False)

    env_overrides = _load_env_overrides(env_prefix)
    if env_overrides:
        layers.append((env_overrides, "env"))

    merged = _deep_copy(DEFAULTS)
    overrides: List[OverrideRecord] = []
    for payload, source in layers:
        _merge_dicts(merged, payload, source, overrides)

    rpc = merged.get("rpc", {}) or {}
    jupiter = merged.get("jupiter", {}) or {}
    quote = merged.get("quote", {}) or {}

    cfg = ToolkitConfig(
        rpc_url=str(rpc.get("url")),
        jupiter_base_url=str(jupiter.get("base_url")),
        http_timeout_seconds=float(jupiter.get("http_timeout_seconds")),
        confirm_timeout_seconds=float(rpc.get("confirm_timeout_seconds")),
        commitment=str(rpc.get("commitment")),
        quote_max_attempts=int(quote.get("max_attempts")),
        quote_stale_delay_seconds=float(quote.get("stale_delay_seconds")),
        quote_error_delay_seconds=float(quote.get("error_delay_seconds")),
        default_slippage_bps=int(jupiter.get("default_slippage_bps")),
        idl_paths={str(k): str(v) for k, v in (merged.get("idl") or {}).items()},
        log_level=str(merged.get("log_level")).upper(),
        overrides=tuple(overrides),
        loaded_files=tuple(loaded_files),
    )
    cfg.log_summary()
    return cfg


def _deep_copy(src: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _deep_copy(v) if isinstance(v, dict) else v for k, v in src.items()}


def _merge_dicts(
    dst: Dict[str, Any],
    src: Dict[str, Any],
    source: str,
    overrides: List[OverrideRecord],
    prefix: str = "",
) -> None:
    for key, value in src.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _merge_dicts(dst[key], value, source, overrides, full_key)
        elif isinstance(value, dict):
            dst[key] = _deep_copy(value)
        else:
            if key in dst and dst[key] != value:
                overrides.append(OverrideRecord(full_key, source, dst[key], value))
            dst[key] = value


def _load_env_overrides(prefix: str) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(prefix):
            continue
        path_parts = env_key[len(prefix):].lower().split("__")
        if not path_parts[0]:
            continue
        # Program ids are case-sensitive and env names are not.
        if path_parts[0] == "idl":
            logger.debug(f"CONFIG | ignoring env idl override | key={env_key}")
            continue
        _assign_env_override(overrides, path_parts, env_val)
    return overrides


def _assign_env_override(dst: Dict[str, Any], path_parts: List[str], raw_val: str) -> None:
    cur = dst
    for part in path_parts[:-1]:
        if part not in cur or not isinstance(cur[part], dict):
            cur[part] = {}
        cur = cur[part]
    cur[path_parts[-1]] = _coerce_env_value(raw_val)


def _coerce_env_value(val: str) -> Any:
    lowered = val.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        pass
    return val


# =============================================================================
# KEYS AND SCHEMAS
# =============================================================================

def load_keypair(private_key_b58: str) -> Keypair:
    """
    Load keypair from base58 private key.

    ACCEPTS: Base58 string decoding to exactly 64 bytes.
    REJECTS: Everything else, with ValueError. Key material is never logged.
    """
    if not private_key_b58 or not isinstance(private_key_b58, str):
        raise ValueError("private key is empty")

    try:
        key_bytes = base58.b58decode(private_key_b58.strip())
    except ValueError as e:
        raise ValueError(f"private key is not valid base58: {e}") from e

    if len(key_bytes) != 64:
        raise ValueError(f"private key decoded to {len(key_bytes)} bytes, expected 64")

    return Keypair.from_bytes(key_bytes)


def build_registry(config: ToolkitConfig, include_builtin: bool = True) -> SchemaRegistry:
    """New SchemaRegistry with the bundled program IDLs and every configured IDL file."""
    registry = SchemaRegistry()
    if include_builtin:
        for program_id, idl in BUILTIN_IDLS.items():
            registry.load(program_id, idl)
    for program_id, path in config.idl_paths.items():
        registry.load_file(path, program_id)
    return registry


__all__ = [
    "DEFAULT_ENV_PREFIX",
    "OverrideRecord",
    "ToolkitConfig",
    "load_config",
    "load_keypair",
    "build_registry",
]
