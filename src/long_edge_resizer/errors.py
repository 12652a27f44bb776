"""Error types raised by the decode/encode pipeline."""

from __future__ import annotations


class ResizerError(Exception):
    """Base class for failures reported to the user as status text."""

    def __init__(self, cause: str) -> None:
        super().__init__(cause)
        self.cause = cause


class DecodeError(ResizerError):
    """The selected file could not be decoded as an image."""


class EncodeError(ResizerError):
    """The encoder declined to produce output for the requested settings."""
