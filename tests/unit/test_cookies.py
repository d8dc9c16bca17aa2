"""
Tests for remember-me cookie transport.
"""

from authkeeper.core.auth.session_control import RememberCookie
from authkeeper.utils.cookies import dump_remember_cookie, load_remember_cookie


NOW = 1_700_000_000


class TestDumpRememberCookie:
    """Tests for Set-Cookie header building."""

    def test_attributes(self):
        cookie = RememberCookie(name="authkeeper_remember", value="sel:tok", expires_at=NOW + 3600)

        header = dump_remember_cookie(cookie, NOW)

        assert header.startswith("authkeeper_remember=")
        assert "Max-Age=3600" in header
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=Lax" in header
        assert "Path=/" in header

    def test_deletion_cookie_expires_immediately(self):
        header = dump_remember_cookie(RememberCookie.deletion("authkeeper_remember"), NOW)

        assert "Max-Age=0" in header

    def test_repr_hides_value(self):
        cookie = RememberCookie(name="n", value="sel:secret-token", expires_at=NOW)
        assert "secret-token" not in repr(cookie)


class TestLoadRememberCookie:
    """Tests for Cookie header parsing."""

    def test_round_trip_through_headers(self):
        cookie = RememberCookie(name="authkeeper_remember", value="sel:tok", expires_at=NOW + 60)
        set_cookie = dump_remember_cookie(cookie, NOW)
        request_header = set_cookie.split(";", 1)[0] + "; other=1"

        assert load_remember_cookie(request_header, "authkeeper_remember") == "sel:tok"

    def test_missing_cookie(self):
        assert load_remember_cookie("other=1", "authkeeper_remember") is None
        assert load_remember_cookie(None, "authkeeper_remember") is None
