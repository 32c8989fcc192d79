"""Rate limiting for the jobflow backend.

Forwarded headers are only honored from trusted proxies, so a client cannot
pick its own rate-limit bucket with a spoofed X-Forwarded-For.
"""

import ipaddress
import os
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from .logging_config import get_logger

logger = get_logger("jobflow.api.rate_limit")

# Override with JOBFLOW_TRUSTED_PROXY_CIDRS (comma-separated CIDRs).
DEFAULT_TRUSTED_CIDRS = (
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "::1/128",
)

# Limits shared by the route modules.
READ_LIMIT = "60/minute"
WRITE_LIMIT = "20/minute"
MONEY_LIMIT = "10/minute"


def load_trusted_networks(raw: Optional[str] = None) -> list:
    """Parse trusted proxy CIDRs, skipping (and logging) invalid entries."""
    if raw is None:
        raw = os.environ.get("JOBFLOW_TRUSTED_PROXY_CIDRS", "")
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] or list(DEFAULT_TRUSTED_CIDRS)
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


_trusted_networks: Optional[list] = None


def is_trusted_proxy(ip_str: str) -> bool:
    global _trusted_networks
    if _trusted_networks is None:
        _trusted_networks = load_trusted_networks()
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in _trusted_networks)


def get_client_ip(request) -> str:
    """Resolve the client IP, using the leftmost X-Forwarded-For entry only
    when the direct peer is a trusted proxy."""
    direct_ip = get_remote_address(request)
    if is_trusted_proxy(direct_ip):
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return direct_ip


limiter = Limiter(key_func=get_client_ip)
