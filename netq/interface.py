"""
Primary network interface detection via ``psutil``.
"""
from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Dict, List, Optional

import psutil

from .models import InterfaceInfo

logger = logging.getLogger(__name__)

_VIRTUAL_PREFIXES = ("lo", "docker", "veth", "br-", "virbr", "tun", "tap", "vmnet", "vboxnet", "utun", "awdl", "llw")

_TYPE_HINTS = (
    (("wl", "wlan", "wi-fi", "wifi", "airport"), "Wireless"),
    (("en", "eth", "ethernet"), "Ethernet"),
    (("ww", "rmnet", "cellular"), "Cellular"),
    (("ppp",), "Ppp"),
)


def guess_interface_type(name: str) -> str:
    lowered = name.lower()
    for prefixes, label in _TYPE_HINTS:
        if lowered.startswith(prefixes):
            return label
    return "Other"


def _is_virtual(name: str) -> bool:
    return name.lower().startswith(_VIRTUAL_PREFIXES)


def _routable_address(addrs: List) -> Optional[str]:
    """First global-ish IPv4/IPv6 address of an interface."""
    for addr in addrs:
        if addr.family not in (socket.AF_INET, socket.AF_INET6):
            continue
        try:
            ip = ipaddress.ip_address(addr.address.split("%", 1)[0])
        except ValueError:
            continue
        if ip.is_loopback or ip.is_link_local or ip.is_unspecified:
            continue
        return str(ip)
    return None


def select_primary(stats: Dict, addrs: Dict) -> InterfaceInfo:
    """Pick the up, addressed, non-virtual interface with the fastest link.

    IPv4-addressed interfaces rank above IPv6-only ones.
    """
    best = None
    best_rank = None
    for name, st in stats.items():
        if not st.isup or _is_virtual(name):
            continue
        nic_addrs = addrs.get(name, [])
        if _routable_address(nic_addrs) is None:
            continue

        has_v4 = any(a.family == socket.AF_INET for a in nic_addrs)
        rank = (has_v4, max(0, st.speed or 0))
        if best_rank is None or rank > best_rank:
            best, best_rank = (name, st), rank

    if best is None:
        return InterfaceInfo.offline()

    name, st = best
    return InterfaceInfo(
        is_connected=True,
        name=name,
        interface_type=guess_interface_type(name),
        link_mbps=float(max(0, st.speed or 0)),
    )


def get_primary_interface() -> InterfaceInfo:
    try:
        return select_primary(psutil.net_if_stats(), psutil.net_if_addrs())
    except (OSError, psutil.Error) as exc:
        logger.debug("Interface enumeration failed: %s", exc)
        return InterfaceInfo.offline()
