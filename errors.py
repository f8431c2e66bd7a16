"""Error kinds raised by the repositories and mutation flows."""


class StoreError(Exception):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(StoreError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationError(StoreError):
    status_code = 422
    code = "VALIDATION_ERROR"


class BadInput(StoreError):
    status_code = 400
    code = "BAD_USER_INPUT"
