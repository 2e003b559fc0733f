"""
User-facing warnings raised by the control panel core.
Every recoverable failure becomes a bounded notice instead of an exception that breaks the page.
The four kinds mirror where the failure came from: transport, payload shape, cross-call consistency, or input validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NoticeKind(str, Enum):
    TRANSPORT = "transport"
    SHAPE = "shape"
    CONSISTENCY = "consistency"
    VALIDATION = "validation"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str
    retry_suggested: bool = False

    @classmethod
    def transport(cls, message: str) -> Notice:
        return cls(kind=NoticeKind.TRANSPORT, message=message, retry_suggested=True)

    @classmethod
    def shape(cls, message: str) -> Notice:
        return cls(kind=NoticeKind.SHAPE, message=message)

    @classmethod
    def consistency(cls, message: str) -> Notice:
        return cls(kind=NoticeKind.CONSISTENCY, message=message)

    @classmethod
    def validation(cls, message: str) -> Notice:
        return cls(kind=NoticeKind.VALIDATION, message=message)
