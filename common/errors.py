"""Error taxonomy shared by the data layer, the domain services and the API."""

from typing import Any, List, Optional


class AuditError(Exception):
    """Base error for the AIH audit system."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AuditError):
    """Malformed or missing input. Carries every violation found."""

    http_status = 400

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(AuditError):
    """Referenced AIH, movement, glosa or user does not exist."""

    http_status = 404


class ConflictError(AuditError):
    """Duplicate record or movement out of sequence."""

    http_status = 400

    def __init__(self, message: str, expected: Optional[str] = None, received: Optional[str] = None):
        super().__init__(message)
        self.expected = expected
        self.received = received


class QueryError(AuditError):
    """Storage engine failure. The client only ever sees a generic message."""

    http_status = 500
    public_message = "Internal database error"

    def __init__(self, message: str, statement: str = "", params: Any = None):
        super().__init__(message)
        self.statement = statement
        self.params = params

    @property
    def is_constraint_violation(self) -> bool:
        from sqlalchemy.exc import IntegrityError

        return isinstance(self.__cause__, IntegrityError)


class AuthError(AuditError):
    """Missing, invalid or expired credentials, or a forbidden action."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.http_status = status_code
