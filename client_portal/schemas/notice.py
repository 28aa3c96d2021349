from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class Notice(BaseModel):
    """A transient message shown once to the user (toast or inline)."""

    level: Literal["success", "error", "info"] = "info"
    title: str
    message: str = ""

    @classmethod
    def error(cls, message: str, title: str = "Error") -> "Notice":
        return cls(level="error", title=title, message=message)

    @classmethod
    def success(cls, title: str, message: str = "") -> "Notice":
        return cls(level="success", title=title, message=message)
