"""Shared contracts for cross-boundary data types.

All dataclasses, enums and exceptions that cross subsystem boundaries are
defined here.

Import pattern:
    from casket.contracts import Ticket, AuthContext, NotFound
"""

# isort: skip_file
# Import order is load-bearing: credentials must load before auth.

from casket.contracts.enums import (
    AccessMode,
    AuthScheme,
    CredentialKind,
    NodeKind,
    TicketType,
)
from casket.contracts.errors import (
    AlreadyWritten,
    CasketError,
    ConditionFailed,
    Forbidden,
    HashMismatch,
    InvalidRequest,
    NotFound,
    TraversalLimitExceeded,
    Unauthorized,
)
from casket.contracts.credentials import (
    AgentPermissions,
    AgentToken,
    Credential,
    Ticket,
    TicketConfig,
    UserToken,
    WritableConfig,
    user_scope,
)
from casket.contracts.auth import AuthContext, PresentedCredential
from casket.contracts.identity import IdentityProvider, VerifiedIdentity
from casket.contracts.nodes import (
    ChunkNode,
    CollectionEntry,
    CollectionNode,
    DagManifest,
    DagNodeRecord,
    EncodedNode,
    FileNode,
    Node,
)
from casket.contracts.ownership import KeyPage, OwnershipCheck, OwnershipRecord
from casket.contracts.results import (
    LoginResult,
    PutResult,
    StoredContent,
    UploadResult,
    VerificationFailure,
    VerificationReport,
)

__all__ = [
    # enums
    "AccessMode",
    "AuthScheme",
    "CredentialKind",
    "NodeKind",
    "TicketType",
    # errors
    "AlreadyWritten",
    "CasketError",
    "ConditionFailed",
    "Forbidden",
    "HashMismatch",
    "InvalidRequest",
    "NotFound",
    "TraversalLimitExceeded",
    "Unauthorized",
    # credentials
    "AgentPermissions",
    "AgentToken",
    "Credential",
    "Ticket",
    "TicketConfig",
    "UserToken",
    "WritableConfig",
    "user_scope",
    # auth
    "AuthContext",
    "PresentedCredential",
    # identity
    "IdentityProvider",
    "VerifiedIdentity",
    # nodes
    "ChunkNode",
    "CollectionEntry",
    "CollectionNode",
    "DagManifest",
    "DagNodeRecord",
    "EncodedNode",
    "FileNode",
    "Node",
    # ownership
    "KeyPage",
    "OwnershipCheck",
    "OwnershipRecord",
    # results
    "LoginResult",
    "PutResult",
    "StoredContent",
    "UploadResult",
    "VerificationFailure",
    "VerificationReport",
]
