# Overview: Domain error taxonomy shared by services, routes and the CLI.

"""
Error kinds surfaced to callers.

Every service raises one of these synchronously; none are retried (only the
concurrency errors handled in services/concurrency.py are). Routes render
them as {"error": message, "kind": kind} with the class's status code.
"""

from __future__ import annotations


class BizDeskError(Exception):
    """Base class for errors surfaced to callers with a kind and message."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(BizDeskError, ValueError):
    """Missing or invalid input; rejected before any write."""

    kind = "validation_error"
    status_code = 400


class ConflictError(BizDeskError, ValueError):
    """409-level business rule conflict (e.g., duplicate category name)."""

    kind = "conflict"
    status_code = 409


class NotFoundError(BizDeskError, LookupError):
    kind = "not_found"
    status_code = 404


class Unauthorized(BizDeskError):
    """No account scope, a foreign account's record, or a self-approval."""

    kind = "unauthorized"
    status_code = 403


class InvalidStateError(BizDeskError):
    """Transition attempted on a record that is no longer pending."""

    kind = "invalid_state"
    status_code = 409


class IntegrityFault(BizDeskError):
    """
    A decrement would drive a quantity negative.

    This signals that the product snapshot and the ledger have diverged
    (a prior bug), not bad input, so it is kept distinct from ValidationError.
    """

    kind = "integrity_fault"
    status_code = 500
