"""
Unit tests for Account and Session domain models
"""
import pytest

from flowbatch.core.domain.account import Account, parse_cookie_header
from flowbatch.core.domain.session import Session, SessionStatus
from flowbatch.core.drivers.cookies import to_browser_cookies
from flowbatch.core.exceptions import SessionBusyError


class TestCookieParsing:
    """Test cookie header handling"""

    def test_parse_keeps_equals_in_values(self, sample_cookie):
        cookies = parse_cookie_header(sample_cookie)
        assert cookies["__Secure-next-auth.session-token"] == "abc.def="
        assert cookies["__Host-csrf"] == "xyz"

    def test_parse_skips_garbage(self):
        assert parse_cookie_header("a=1; ; junk; b=2") == {"a": "1", "b": "2"}

    def test_browser_cookies_host_prefix_is_host_bound(self, sample_cookie):
        cookies = {c["name"]: c for c in to_browser_cookies(sample_cookie)}
        host = cookies["__Host-csrf"]
        assert host["url"] == "https://labs.google/"
        assert "domain" not in host
        assert host["secure"] is True

    def test_browser_cookies_secure_flag(self, sample_cookie):
        cookies = {c["name"]: c for c in to_browser_cookies(sample_cookie)}
        assert cookies["__Secure-next-auth.session-token"]["secure"] is True
        assert cookies["__Secure-next-auth.session-token"]["domain"] == ".labs.google"
        assert cookies["EMAIL"]["secure"] is False


class TestAccountCreate:
    """Test account creation"""

    def test_email_from_cookie(self, sample_cookie):
        account = Account.create(sample_cookie, concurrency=2)
        assert account.email == "alice@example.com"
        assert account.concurrency == 2
        assert not account.expired

    def test_explicit_email_wins(self, sample_cookie):
        account = Account.create(sample_cookie, email="bob@example.com")
        assert account.email == "bob@example.com"

    def test_unknown_email_without_cookie(self):
        account = Account.create("SID=1")
        assert account.email == "unknown"

    def test_empty_cookie_rejected(self):
        with pytest.raises(ValueError, match="Cookie"):
            Account.create("   ")

    def test_concurrency_must_be_positive(self, sample_cookie):
        with pytest.raises(ValueError, match="concurrency"):
            Account.create(sample_cookie, concurrency=0)

    def test_with_cookie_clears_expired(self, sample_account):
        expired = sample_account.mark_expired()
        assert expired.expired
        assert not expired.with_cookie("SID=2").expired


class TestSession:
    """Test session busy/ready flips"""

    def _session(self):
        return Session(
            account_id="acc-1",
            profile_id="prof-1",
            provider_url="http://127.0.0.1:19995",
            debug_address="127.0.0.1:9222",
        )

    def test_busy_ready_cycle(self):
        session = self._session()
        session.mark_busy()
        assert session.status == SessionStatus.BUSY
        session.mark_ready()
        assert session.status == SessionStatus.READY

    def test_busy_session_rejects_second_broker(self):
        session = self._session()
        session.mark_busy()
        with pytest.raises(SessionBusyError):
            session.mark_busy()

    def test_error_is_sticky(self):
        session = self._session()
        session.mark_error()
        session.mark_ready()
        assert session.status == SessionStatus.ERROR
        assert not session.is_usable()

    def test_handle_is_profile_id(self):
        assert self._session().session_handle == "prof-1"
