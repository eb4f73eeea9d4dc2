"""Operation outcomes.

These types answer: "What did a store or service operation produce?"
"""

from dataclasses import dataclass, field
from typing import Any

from casket.contracts.credentials import UserToken
from casket.contracts.identity import VerifiedIdentity


@dataclass(frozen=True)
class PutResult:
    """Content store write result.

    ``is_new`` is False when the key already existed (dedup no-op).
    """

    key: str
    size: int
    is_new: bool


@dataclass(frozen=True)
class StoredContent:
    """Bytes and content type read back from the content store."""

    key: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a node upload through the service."""

    key: str
    size: int
    content_type: str
    stored_keys: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "size": self.size, "contentType": self.content_type}


@dataclass(frozen=True)
class VerificationFailure:
    """One node that failed a DAG verification pass."""

    key: str
    reason: str


@dataclass
class VerificationReport:
    """Result of re-hashing a DAG bottom-up."""

    root: str
    checked: list[str] = field(default_factory=list)
    failures: list[VerificationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class LoginResult:
    """A freshly minted user token plus what the caller needs to refresh it.

    ``refresh_token`` is handed back once and never stored in the clear.
    """

    user_token: UserToken
    refresh_token: str
    identity: VerifiedIdentity

    def to_dict(self) -> dict[str, Any]:
        return {
            "userToken": self.user_token.token_id,
            "refreshToken": self.refresh_token,
            "expiresAt": self.user_token.expires_at.isoformat(),
            "user": {
                "id": self.identity.user_id,
                "email": self.identity.email,
                "name": self.identity.name,
            },
        }
