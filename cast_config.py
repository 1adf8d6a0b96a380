"""
Runtime settings: where the local proxy lives, device port, and network timeouts.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

import aiohttp

DEFAULT_PROXY_BASE = "http://localhost:8000"
DEFAULT_DEVICE_PORT = 8000
DEFAULT_TIMEOUT = 5.0
SSDP_MX = 5  # seconds to wait for SSDP responses
DEFAULT_EVENT_QUEUE_SIZE = 32


@dataclass(frozen=True)
class CastConfig:
    proxy_base: str = DEFAULT_PROXY_BASE
    device_port: int = DEFAULT_DEVICE_PORT
    timeout: float = DEFAULT_TIMEOUT
    ssdp_timeout: int = SSDP_MX
    event_queue_size: int = DEFAULT_EVENT_QUEUE_SIZE

    def __post_init__(self) -> None:
        # "http://host:8000/" and "http://host:8000" must build the same URLs
        object.__setattr__(self, "proxy_base", self.proxy_base.rstrip("/"))

    @property
    def client_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout)

    @classmethod
    def from_env(cls) -> "CastConfig":
        """Build a config from DLNA_CAST_* environment variables, falling back to defaults."""
        return cls(
            proxy_base=os.environ.get("DLNA_CAST_PROXY_URL", DEFAULT_PROXY_BASE),
            device_port=int(os.environ.get("DLNA_CAST_DEVICE_PORT", DEFAULT_DEVICE_PORT)),
            timeout=float(os.environ.get("DLNA_CAST_TIMEOUT", DEFAULT_TIMEOUT)),
            ssdp_timeout=int(os.environ.get("DLNA_CAST_SSDP_TIMEOUT", SSDP_MX)),
        )
