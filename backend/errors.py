"""
Ошибки бизнес-логики.

Сервисы бронирования, заказов и платежей не знают про HTTP: они поднимают
ServiceError с тегом ErrorKind, а main.py превращает его в ответ
{"success": false, "message": ...} с нужным статусом.
"""
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    GATEWAY = "gateway"
    INTERNAL = "internal"


HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.GATEWAY: 502,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


class ValidationFailed(ServiceError):
    kind = ErrorKind.VALIDATION


class Conflict(ServiceError):
    kind = ErrorKind.CONFLICT


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND


class Unauthorized(ServiceError):
    kind = ErrorKind.UNAUTHORIZED


class Forbidden(ServiceError):
    kind = ErrorKind.FORBIDDEN


class GatewayError(ServiceError):
    kind = ErrorKind.GATEWAY
