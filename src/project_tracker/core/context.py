"""Operation-scoped context helpers.

Two context variables travel with every task: the operation id used for
correlation, and a small mapping of fields (sync state, cache namespace,
HTTP route) that the logging filter stamps onto each record.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from types import MappingProxyType

REQUEST_ID_HEADER = "X-Request-ID"

_operation_id_ctx_var: ContextVar[str] = ContextVar("operation_id", default="-")
_log_fields_ctx_var: ContextVar[Mapping[str, str]] = ContextVar(
    "log_fields", default=MappingProxyType({})
)


def new_operation_id() -> str:
    """Return a short random identifier suitable for log correlation."""

    return uuid.uuid4().hex[:12]


def get_operation_id() -> str:
    return _operation_id_ctx_var.get()


def bind_operation_id(operation_id: str) -> Token[str]:
    return _operation_id_ctx_var.set(operation_id)


def reset_operation_id(token: Token[str]) -> None:
    _operation_id_ctx_var.reset(token)


def get_log_fields() -> Mapping[str, str]:
    """Return the fields bound to the current execution context."""

    return _log_fields_ctx_var.get()


def bind_log_fields(**fields: object) -> Token[Mapping[str, str]]:
    """Merge ``fields`` into the bound mapping; ``None`` values remove a key."""

    merged = dict(_log_fields_ctx_var.get())
    for key, value in fields.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = str(value)
    return _log_fields_ctx_var.set(MappingProxyType(merged))


def reset_log_fields(token: Token[Mapping[str, str]]) -> None:
    _log_fields_ctx_var.reset(token)


@contextmanager
def operation_scope(operation_id: str | None = None, **fields: object) -> Iterator[str]:
    """Bind a (fresh) operation identifier and extra log fields for the block."""

    value = operation_id or new_operation_id()
    id_token = bind_operation_id(value)
    fields_token = bind_log_fields(**fields)
    try:
        yield value
    finally:
        reset_log_fields(fields_token)
        reset_operation_id(id_token)


__all__ = [
    "REQUEST_ID_HEADER",
    "bind_log_fields",
    "bind_operation_id",
    "get_log_fields",
    "get_operation_id",
    "new_operation_id",
    "operation_scope",
    "reset_log_fields",
    "reset_operation_id",
]
