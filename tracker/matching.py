"""IP range membership and glob matching used by the tracking exclusions.

Supported IP range forms:
    192.168.1.*                  wildcard, any octet may be ``*``
    192.168.1.1-192.168.1.100    dashed, inclusive bounds
    192.168.17.1/16              CIDR prefix length
    127.0.0.1/255.255.255.255    dotted-quad mask
    10.0.0.1                     single address

Malformed ranges or addresses never match and never raise.
"""

import ipaddress
import re
from collections.abc import Iterable
from functools import lru_cache

_FULL_MASK = 0xFFFFFFFF


@lru_cache(maxsize=512)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    return re.compile(re.escape(pattern).replace(r"\*", ".*"))


def matches(pattern: str, value: str) -> bool:
    """Return True if the whole of ``value`` matches ``pattern``.

    ``*`` stands for zero or more characters. Matching is case-sensitive.
    """
    if pattern == value:
        return True
    return _compile_glob(pattern).fullmatch(value) is not None


def matches_any(patterns: Iterable[str], value: str) -> bool:
    return any(matches(pattern, value) for pattern in patterns)


def ip_to_int(address: str) -> int | None:
    """Convert a dotted-quad IPv4 address to its 32-bit value, or None."""
    try:
        return int(ipaddress.IPv4Address(address.strip()))
    except ValueError:
        return None


def _expand_wildcard(range_spec: str) -> str:
    if "-" not in range_spec and "*" in range_spec:
        return range_spec.replace("*", "0") + "-" + range_spec.replace("*", "255")
    return range_spec


def _parse_dashed(range_spec: str) -> tuple[int | None, int | None] | None:
    parts = range_spec.split("-")
    if len(parts) != 2:
        return None
    return ip_to_int(parts[0]), ip_to_int(parts[1])


def _parse_mask(suffix: str) -> int | None:
    if suffix.isascii() and suffix.isdigit():
        prefix = int(suffix)
        if prefix > 32:
            return None
        return (_FULL_MASK << (32 - prefix)) & _FULL_MASK
    return ip_to_int(suffix)


def _parse_network(range_spec: str) -> tuple[int, int] | None:
    address, sep, suffix = range_spec.partition("/")
    network = ip_to_int(address)
    if network is None:
        return None
    if not sep:
        return network, _FULL_MASK
    mask = _parse_mask(suffix.strip())
    if mask is None:
        return None
    return network, mask


def ip_in_range(ip: str, range_spec: str) -> bool:
    """Return True if ``ip`` falls inside ``range_spec``."""
    address = ip_to_int(ip)
    if address is None:
        return False

    range_spec = _expand_wildcard(range_spec.strip())

    dashed = _parse_dashed(range_spec)
    if dashed is not None:
        lower, upper = dashed
        if lower is None or upper is None:
            return False
        return lower <= address <= upper

    parsed = _parse_network(range_spec)
    if parsed is None:
        return False
    network, mask = parsed
    return address & mask == network & mask


def ip_not_in_any_range(ip: str, ranges: Iterable[str]) -> bool:
    for range_spec in ranges:
        if ip_in_range(ip, range_spec):
            return False
    return True


def is_valid_ip_range(range_spec: str) -> bool:
    """Return True if ``range_spec`` parses as one of the supported forms."""
    range_spec = _expand_wildcard(range_spec.strip())
    dashed = _parse_dashed(range_spec)
    if dashed is not None:
        return None not in dashed
    return _parse_network(range_spec) is not None
