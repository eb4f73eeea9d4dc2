"""Access requirements per CAS operation.

Every operation declares up front which access mode it needs and which
ticket type (if any) may satisfy it. Nothing defaults to "assume write":
an operation missing from the table is a programming error.
"""

from dataclasses import dataclass
from enum import Enum

from casket.contracts.enums import AccessMode, TicketType


class CasOperation(Enum):
    """Operations exposed under ``/cas/{scope}``."""

    RESOLVE = "resolve"
    PUT_NODE = "put_node"
    PUT_DAG = "put_dag"
    GET_NODE = "get_node"
    GET_DAG = "get_dag"
    LIST_NODES = "list_nodes"
    DELETE_NODE = "delete_node"


@dataclass(frozen=True)
class OperationRequirement:
    """What an operation needs from the caller's context.

    ``ticket_types`` lists the ticket types allowed to perform the
    operation; an empty tuple means tickets are refused outright.
    """

    mode: AccessMode
    ticket_types: tuple[TicketType, ...] = ()
    key_scoped: bool = False

    def allows_ticket(self, ticket_type: TicketType) -> bool:
        return ticket_type in self.ticket_types


OPERATION_REQUIREMENTS: dict[CasOperation, OperationRequirement] = {
    # Upload protocol step: write tickets must be able to ask what is missing
    CasOperation.RESOLVE: OperationRequirement(
        mode=AccessMode.READ_OR_WRITE, ticket_types=(TicketType.WRITE,)
    ),
    CasOperation.PUT_NODE: OperationRequirement(
        mode=AccessMode.WRITE, ticket_types=(TicketType.WRITE,)
    ),
    CasOperation.PUT_DAG: OperationRequirement(
        mode=AccessMode.WRITE, ticket_types=(TicketType.WRITE,)
    ),
    CasOperation.GET_NODE: OperationRequirement(
        mode=AccessMode.READ, ticket_types=(TicketType.READ,), key_scoped=True
    ),
    CasOperation.GET_DAG: OperationRequirement(
        mode=AccessMode.READ, ticket_types=(TicketType.READ,), key_scoped=True
    ),
    CasOperation.LIST_NODES: OperationRequirement(mode=AccessMode.READ),
    CasOperation.DELETE_NODE: OperationRequirement(mode=AccessMode.WRITE),
}


def requirement_for(operation: CasOperation) -> OperationRequirement:
    """Look up an operation's requirement.

    Raises:
        KeyError: If the operation has no declared requirement
    """
    return OPERATION_REQUIREMENTS[operation]


def needs_ticket_type(operation: CasOperation) -> TicketType | None:
    """The ticket type a caller should mint to perform ``operation``.

    None when the operation cannot be performed with a ticket at all.
    """
    requirement = requirement_for(operation)
    if not requirement.ticket_types:
        return None
    return requirement.ticket_types[0]
