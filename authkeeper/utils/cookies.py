"""
Remember-Me Cookie Transport
============================

Builds and reads the HTTP headers that carry the remember-me cookie.

The cookie value itself (``selector:token``) is produced by the session
token issuer; this module only frames it for HTTP.
"""

from __future__ import annotations

from typing import Optional

from werkzeug.http import dump_cookie, parse_cookie

from authkeeper.core.auth.session_control import RememberCookie


def dump_remember_cookie(
    cookie: RememberCookie,
    now: int,
    secure: bool = True,
    path: str = "/",
    domain: Optional[str] = None,
    samesite: str = "Lax",
) -> str:
    """
    Build a ``Set-Cookie`` header value for a remember-me cookie.

    A cookie with an empty value (see ``RememberCookie.deletion``) produces
    a header that makes the browser drop the cookie.

    Args:
        cookie: Cookie to send
        now: Current unix time, used to compute Max-Age
        secure: Send over HTTPS only
        path: Cookie path
        domain: Cookie domain (host-only when None)
        samesite: SameSite attribute

    Returns:
        Header value without the ``Set-Cookie:`` prefix
    """
    max_age = max(0, cookie.expires_at - now) if cookie.value else 0
    return dump_cookie(
        cookie.name,
        cookie.value,
        max_age=max_age,
        path=path,
        domain=domain,
        secure=secure,
        httponly=True,
        samesite=samesite,
    )


def load_remember_cookie(cookie_header: Optional[str], name: str) -> Optional[str]:
    """
    Extract the remember-me cookie value from a ``Cookie`` request header.

    Returns:
        The raw ``selector:token`` value, or None if absent or empty
    """
    if not cookie_header:
        return None
    value = parse_cookie(cookie_header).get(name)
    return value or None
