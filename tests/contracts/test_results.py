"""Tests for operation outcomes and results.

Tests for:
- UploadResult wire shape
- StoredContent size derives from bytes
- VerificationReport ok reflects failures
- LoginResult wire shape carries user info but never the fingerprint
"""

from datetime import UTC, datetime

from casket.contracts import (
    LoginResult,
    StoredContent,
    UploadResult,
    UserToken,
    VerificationFailure,
    VerificationReport,
    VerifiedIdentity,
)

KEY = "sha256:" + "c" * 64


class TestUploadResult:
    def test_to_dict_uses_wire_names(self) -> None:
        result = UploadResult(key=KEY, size=12, content_type="text/plain", stored_keys=(KEY,))
        assert result.to_dict() == {"key": KEY, "size": 12, "contentType": "text/plain"}

    def test_stored_keys_default_empty(self) -> None:
        assert UploadResult(key=KEY, size=0, content_type="text/plain").stored_keys == ()


class TestStoredContent:
    def test_size_is_byte_length(self) -> None:
        assert StoredContent(key=KEY, content=b"abc", content_type="text/plain").size == 3


class TestVerificationReport:
    def test_empty_report_is_ok(self) -> None:
        report = VerificationReport(root=KEY)
        assert report.ok
        assert report.checked == []

    def test_failure_makes_report_not_ok(self) -> None:
        report = VerificationReport(root=KEY)
        report.failures.append(VerificationFailure(KEY, "content missing"))
        assert not report.ok

    def test_reports_do_not_share_lists(self) -> None:
        a = VerificationReport(root=KEY)
        b = VerificationReport(root=KEY)
        a.checked.append(KEY)
        assert b.checked == []


class TestLoginResult:
    def test_to_dict(self) -> None:
        expires = datetime(2026, 1, 1, 13, 0, tzinfo=UTC)
        token = UserToken(
            token_id="usr_abc",
            user_id="u1",
            refresh_token_fingerprint="f" * 64,
            created_at=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
            expires_at=expires,
        )
        identity = VerifiedIdentity(
            user_id="u1", refresh_token="rt-1", email="ada@example.com", name="Ada"
        )

        body = LoginResult(user_token=token, refresh_token="rt-1", identity=identity).to_dict()

        assert body == {
            "userToken": "usr_abc",
            "refreshToken": "rt-1",
            "expiresAt": expires.isoformat(),
            "user": {"id": "u1", "email": "ada@example.com", "name": "Ada"},
        }
        assert "f" * 64 not in str(body)
