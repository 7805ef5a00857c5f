from enum import Enum


class ErrorKind(str, Enum):
    validation = "validation"
    not_found = "not_found"
    conflict = "conflict"
    forbidden = "forbidden"
    capacity = "capacity"


class ServiceError(Exception):
    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class ValidationError(ServiceError):
    kind = ErrorKind.validation


class NotFoundError(ServiceError):
    kind = ErrorKind.not_found


class ConflictError(ServiceError):
    kind = ErrorKind.conflict


class ForbiddenError(ServiceError):
    kind = ErrorKind.forbidden


class CapacityError(ServiceError):
    kind = ErrorKind.capacity
