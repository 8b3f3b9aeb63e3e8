"""Local network helpers used for the relay startup banner."""

from __future__ import annotations

import logging
import socket

logger = logging.getLogger(__name__)


def get_lan_ip() -> str:
    """Return the first non-loopback IPv4 address of this host.

    Opens a UDP socket towards a public address to let the kernel pick
    the outbound interface; no packet is sent. Falls back to 127.0.0.1.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("10.255.255.255", 1))
        address = sock.getsockname()[0]
    except OSError as exc:
        logger.debug("Could not determine LAN address: %s", exc)
        return "127.0.0.1"
    finally:
        sock.close()
    if address.startswith("127.") or address == "0.0.0.0":
        return "127.0.0.1"
    return address
