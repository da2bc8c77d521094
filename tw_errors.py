from __future__ import annotations

from typing import Optional


class TcxWindowError(Exception):
    """Base class for every error raised while extracting or aggregating."""


class MissingRequiredField(TcxWindowError):
    def __init__(self, field: str, where: str) -> None:
        self.field = field
        self.where = where
        super().__init__(f"Missing required field '{field}' in {where}")


class MalformedValue(TcxWindowError):
    def __init__(self, field: str, raw: Optional[str], where: str) -> None:
        self.field = field
        self.raw = raw
        self.where = where
        super().__init__(f"Malformed value for '{field}' in {where}: {raw!r}")


class EmptyInput(TcxWindowError):
    pass


class InvalidConfiguration(TcxWindowError):
    pass
