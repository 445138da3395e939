"""Domain exceptions raised by the service layer.

Routes never build error payloads by hand: the handler registered in
``create_app`` renders every ``RBACError`` into the standard JSON error shape.
"""
from __future__ import annotations
from typing import Iterable, List


class RBACError(Exception):
    status_code = 400
    title = 'Bad Request'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RBACError):
    """One or more input problems, collected before anything is written."""

    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = list(errors)
        super().__init__('; '.join(self.errors))


class NotFoundError(RBACError):
    status_code = 404
    title = 'Not Found'


class ConflictError(RBACError):
    status_code = 409
    title = 'Conflict'


class PersistenceError(RBACError):
    status_code = 500
    title = 'Internal Server Error'


__all__ = ['RBACError', 'ValidationError', 'NotFoundError', 'ConflictError', 'PersistenceError']
