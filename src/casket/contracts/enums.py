"""Status codes, kinds and modes used across subsystem boundaries."""

from enum import Enum


class CredentialKind(str, Enum):
    """Variant of a stored credential.

    Uses (str, Enum) because this IS stored in the database (credentials.kind).
    """

    USER = "user"
    AGENT = "agent"
    TICKET = "ticket"


class TicketType(str, Enum):
    """What a ticket authorizes.

    Uses (str, Enum) for database serialization to credentials.ticket_type.
    """

    READ = "read"
    WRITE = "write"


class NodeKind(str, Enum):
    """Variant of a Merkle-DAG node.

    Uses (str, Enum) for database serialization to dag_nodes.kind.
    """

    CHUNK = "chunk"
    FILE = "file"
    COLLECTION = "collection"


class AuthScheme(str, Enum):
    """Authorization header scheme.

    BEARER carries a user or agent token, TICKET carries a ticket id.
    """

    BEARER = "bearer"
    TICKET = "ticket"


class AccessMode(Enum):
    """Access an operation needs from the caller.

    Derived from the operation table, never stored - plain Enum.
    """

    NONE = "none"
    READ = "read"
    WRITE = "write"
    READ_OR_WRITE = "read_or_write"
