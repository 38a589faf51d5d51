from __future__ import annotations

from .geoip import init_geoip, shutdown_geoip

__all__ = ["init_geoip", "shutdown_geoip"]
