from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal

ErrorStage = Literal["index", "delete", "query", "traverse", "analytics", "config", "unknown"]


class ConfigurationError(ValueError):
    """Raised when an imported configuration cannot be parsed or validated."""


class StoreError(RuntimeError):
    """Raised when a persisted document or graph store cannot be read or written."""

    def __init__(self, message: str, *, path: str | None = None, write: bool = False) -> None:
        super().__init__(message)
        self.path = path
        self.write = write


@dataclass(frozen=True)
class CodedError:
    code: str
    stage: ErrorStage
    message: str
    detail: dict[str, Any] | None = None


def _name(e: BaseException) -> str:
    return type(e).__name__


def classify_error(*, e: BaseException, stage: ErrorStage) -> CodedError:
    msg = str(e) if str(e) else _name(e)

    if isinstance(e, ConfigurationError):
        return CodedError(code="CONFIG_INVALID", stage=stage, message=msg)

    # Store issues
    if isinstance(e, StoreError):
        code = "STORE_WRITE_FAILED" if e.write else "STORE_READ_FAILED"
        detail = {"path": e.path} if e.path else None
        return CodedError(code=code, stage=stage, message=msg, detail=detail)
    if isinstance(e, json.JSONDecodeError):
        return CodedError(code="STORE_READ_FAILED", stage=stage, message=msg)

    # Dataset / file issues
    if isinstance(e, FileNotFoundError) or "Dataset path does not exist" in msg:
        return CodedError(code="DATASET_NOT_FOUND", stage=stage, message=msg)

    # Malformed document records
    if isinstance(e, (KeyError, TypeError)) and stage == "index":
        return CodedError(code="DOCUMENT_INVALID", stage=stage, message=msg, detail={"type": _name(e)})

    return CodedError(code="UNCLASSIFIED", stage=stage, message=msg, detail={"type": _name(e)})
