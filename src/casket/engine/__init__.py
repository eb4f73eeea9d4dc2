"""Casket engine: access control, ticket issuance, auth and CAS operations."""

from casket.engine.access import AccessController, parse_authorization
from casket.engine.auth_service import AuthService
from casket.engine.cas_service import CasService
from casket.engine.operations import (
    OPERATION_REQUIREMENTS,
    CasOperation,
    OperationRequirement,
    requirement_for,
)
from casket.engine.tickets import TicketIssuer

__all__ = [
    "OPERATION_REQUIREMENTS",
    "AccessController",
    "AuthService",
    "CasOperation",
    "CasService",
    "OperationRequirement",
    "TicketIssuer",
    "parse_authorization",
    "requirement_for",
]
