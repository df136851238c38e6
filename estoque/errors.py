from __future__ import annotations


class EstoqueError(Exception):
    """Base error rendered by the web layer as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NoFileProvidedError(EstoqueError):
    status_code = 400

    def __init__(self, message: str = "Nenhum arquivo enviado"):
        super().__init__(message)


class InvalidFileError(EstoqueError):
    status_code = 400


class BulkInsertError(EstoqueError):
    status_code = 500


class NoDataError(EstoqueError):
    status_code = 404


class WorkbookWriteError(EstoqueError):
    status_code = 500


class ValidationError(EstoqueError):
    status_code = 400


class NotFoundError(EstoqueError):
    status_code = 404


class AuthenticationError(EstoqueError):
    status_code = 401


class PermissionDeniedError(EstoqueError):
    status_code = 403


class ConflictError(EstoqueError):
    status_code = 409
