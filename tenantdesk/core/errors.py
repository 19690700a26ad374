"""
Domain errors raised by the ticket core.

The HTTP layer maps each class to a status code (see ``tenantdesk.main``);
nothing here is fatal to the process.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(DomainError):
    status_code = 404


class Forbidden(DomainError):
    status_code = 403


class InvalidState(DomainError):
    status_code = 400


class ValidationFailure(DomainError):
    status_code = 400


class UnknownRoleError(DomainError):
    """A role value outside RoleEnum reached a policy predicate."""

    status_code = 403
