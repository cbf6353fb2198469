from __future__ import annotations
import os
from typing import Tuple

# Base path holding the adapterN directories
DEV_PATH = os.getenv("DVB_DEVPATH", "/dev/dvb")

# Listen bind in format [host]:port
LISTEN = os.getenv("DVB_LISTEN", ":8027")

# Seconds a scrape waits for each frontend before dropping its metrics; 0 waits forever
POLL_TIMEOUT_SECONDS = float(os.getenv("DVB_POLL_TIMEOUT", "5"))

LOG_LEVEL = os.getenv("DVB_LOG_LEVEL", "INFO").upper()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_HOST = "0.0.0.0"


def parse_listen(value: str) -> Tuple[str, int]:
    """
    Split a '[host]:port' listen address.

    An empty host binds all interfaces. IPv6 hosts must be bracketed,
    e.g. '[::1]:8027'. Raises ValueError for anything else.
    """
    host, sep, port_str = value.rpartition(":")
    if not sep:
        raise ValueError(f"listen address {value!r} is not in [host]:port format")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"IPv6 host in {value!r} must be enclosed in brackets")
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port {port_str!r} in listen address {value!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port {port} out of range in listen address {value!r}")
    return host or DEFAULT_HOST, port
