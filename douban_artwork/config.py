from __future__ import annotations

import math
import os
from dataclasses import dataclass
from enum import Enum

DEFAULT_API_BASE_URL = "https://api.douban.com/v2"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class PartialFailurePolicy(str, Enum):
    """What `get_images` does when only one of poster/backdrop lookups fails."""

    FAIL_FAST = "fail_fast"
    RETURN_PARTIAL = "return_partial"


@dataclass(frozen=True)
class DoubanConfig:
    api_key: str | None = None
    api_base_url: str = DEFAULT_API_BASE_URL
    min_delay_seconds: float = 1.0
    max_delay_seconds: float = 3.0
    max_attempts: int = 3
    timeout_seconds: float = 20.0
    partial_policy: PartialFailurePolicy = PartialFailurePolicy.FAIL_FAST
    concurrent: bool = False

    @classmethod
    def from_env(cls) -> DoubanConfig:
        min_delay = _env_float("DOUBAN_MIN_DELAY_SECONDS", cls.min_delay_seconds)
        max_delay = _env_float("DOUBAN_MAX_DELAY_SECONDS", cls.max_delay_seconds)
        if min_delay < 0 or max_delay < min_delay:
            raise RuntimeError(
                "DOUBAN_MIN_DELAY_SECONDS must be >= 0 and <= DOUBAN_MAX_DELAY_SECONDS "
                f"(got {min_delay} and {max_delay})"
            )
        timeout = _env_float("DOUBAN_TIMEOUT_SECONDS", cls.timeout_seconds)
        if timeout <= 0:
            raise RuntimeError(f"DOUBAN_TIMEOUT_SECONDS must be > 0 (got {timeout})")
        max_attempts = _env_int("DOUBAN_MAX_ATTEMPTS", cls.max_attempts)
        if max_attempts < 1:
            raise RuntimeError(f"DOUBAN_MAX_ATTEMPTS must be >= 1 (got {max_attempts})")

        return cls(
            api_key=(os.getenv("DOUBAN_API_KEY") or "").strip() or None,
            api_base_url=_api_base_url(),
            min_delay_seconds=min_delay,
            max_delay_seconds=max_delay,
            max_attempts=max_attempts,
            timeout_seconds=timeout,
            partial_policy=_partial_policy(),
            concurrent=_env_bool("DOUBAN_CONCURRENT", cls.concurrent),
        )


def _api_base_url() -> str:
    base = (os.getenv("DOUBAN_API_BASE_URL") or DEFAULT_API_BASE_URL).strip()
    if not base.startswith(("https://", "http://")):
        raise RuntimeError("DOUBAN_API_BASE_URL must start with http:// or https://")
    return base.rstrip("/")


def _partial_policy() -> PartialFailurePolicy:
    raw = (os.getenv("DOUBAN_PARTIAL_POLICY") or PartialFailurePolicy.FAIL_FAST.value).strip().lower()
    try:
        return PartialFailurePolicy(raw)
    except ValueError:
        choices = ", ".join(policy.value for policy in PartialFailurePolicy)
        raise RuntimeError(f"DOUBAN_PARTIAL_POLICY must be one of: {choices} (got {raw!r})") from None


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number (got {raw!r})") from None
    if not math.isfinite(value):
        raise RuntimeError(f"{name} must be a finite number (got {raw!r})")
    return value


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r})") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise RuntimeError(f"{name} must be a boolean (got {raw!r})")
