from __future__ import annotations

from typing import Any


class DynadocError(Exception):
    pass


class ConditionFailedError(DynadocError):
    pass


class NotFoundError(DynadocError):
    pass


class TableNotFoundError(NotFoundError):
    pass


class ValidationError(DynadocError):
    pass


class ModelDefinitionError(ValidationError):
    pass


class MissingHashKey(ValidationError):
    pass


class MissingRangeKey(ValidationError):
    pass


class UnknownAttribute(ValidationError):
    def __init__(self, model_name: str, attribute: str) -> None:
        super().__init__(f"{model_name}: unknown attribute: {attribute}")
        self.model_name = model_name
        self.attribute = attribute


class InvalidQuery(ValidationError):
    pass


class UnsupportedKeyType(ValidationError):
    pass


class RecordNotUnique(ConditionFailedError):
    pass


class StaleObjectError(ConditionFailedError):
    def __init__(self, document: Any, operation: str) -> None:
        super().__init__(f"{type(document).__name__}: {operation} failed; the item was modified or deleted")
        self.document = document
        self.operation = operation


class DocumentNotValid(DynadocError):
    def __init__(self, document: Any) -> None:
        errors = list(getattr(document, "errors", []))
        super().__init__(f"{type(document).__name__} is invalid: {', '.join(errors) or 'validation aborted'}")
        self.document = document
        self.errors = errors


class RecordNotSaved(DynadocError):
    def __init__(self, document: Any) -> None:
        super().__init__(f"{type(document).__name__}: save was aborted by a hook")
        self.document = document


class RecordNotDestroyed(DynadocError):
    def __init__(self, document: Any) -> None:
        super().__init__(f"{type(document).__name__}: destroy was aborted by a hook")
        self.document = document


class DocumentDestroyedError(DynadocError):
    pass


class TransactionError(DynadocError):
    pass


class Rollback(DynadocError):
    pass


class BatchRetryExceededError(DynadocError):
    def __init__(self, *, operation: str, unprocessed_count: int) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})")
        self.operation = operation
        self.unprocessed_count = unprocessed_count


class TransactionCanceledError(DynadocError):
    def __init__(self, *, message: str, reason_codes: tuple[str, ...]) -> None:
        super().__init__(message)
        self.reason_codes = reason_codes


class AwsError(DynadocError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
