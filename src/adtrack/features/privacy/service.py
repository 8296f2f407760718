from __future__ import annotations

import hashlib
from collections.abc import Mapping


def _header(headers: Mapping[str, str], name: str) -> str:
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            return str(value or "")
    return ""


def client_ip_from_headers(headers: Mapping[str, str] | None, remote_addr: str | None = None) -> str:
    """
    Resolves the client ip behind proxies:
    first X-Forwarded-For hop, then X-Real-IP, then the socket address.
    """
    headers = headers or {}
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = _header(headers, "x-real-ip").strip()
    if real_ip:
        return real_ip
    return (remote_addr or "").strip()


def hash_ip(ip: str | None, salt: str) -> str:
    """
    Salted, truncated sha256 so raw addresses are never stored.
    """
    if not ip:
        return ""
    return hashlib.sha256(f"{ip}{salt}".encode()).hexdigest()[:16]
