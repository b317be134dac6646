from collections.abc import Mapping
from typing import Any


def _header_value(headers: Mapping[str, Any], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() != name:
            continue
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value:
            return value
    return None


def resolve_referrer(headers: Mapping[str, Any], site_root_url: str) -> str | None:
    """Return the external referrer of a request, if any.

    ``referer`` wins over ``utm_source``. Referrers pointing back at the
    site itself are dropped.
    """
    referrer = _header_value(headers, "referer") or _header_value(headers, "utm_source")
    if not referrer:
        return None
    if site_root_url and referrer.startswith(site_root_url):
        return None
    return referrer
