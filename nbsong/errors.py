"""Exception hierarchy raised by the .nbs codec."""

from __future__ import annotations


class NbsError(Exception):
    """Base class for every error raised by nbsong."""


class TruncatedData(NbsError):
    """
    A read ran past the end of the buffer.

    Raised by BinaryReader only; the decoder re-raises it as the
    stage-specific DecodeError subclass.
    """

    def __init__(self, offset: int, wanted: int, available: int, detail: str | None = None) -> None:
        self.offset = offset
        self.wanted = wanted
        self.available = available
        super().__init__(
            detail or f"wanted {wanted} byte(s) at offset {offset}, only {available} left"
        )


class DecodeError(NbsError, ValueError):
    """
    A .nbs buffer could not be turned into a Song.

    Attributes:
        stage:  Which part of the file was being parsed
                ("header", "notes", "layers", "resolve", "instruments").
        offset: Byte offset at which the problem was detected, or None.
    """

    default_stage = "decode"

    def __init__(self, detail: str, offset: int | None = None, stage: str | None = None) -> None:
        self.detail = detail
        self.offset = offset
        self.stage = stage or self.default_stage
        where = f" at byte {offset}" if offset is not None else ""
        super().__init__(f"{self.stage}{where}: {detail}")


class MalformedHeader(DecodeError):
    """The buffer ended inside the fixed header fields."""

    default_stage = "header"


class MalformedNoteStream(DecodeError):
    """The note stream or layer section is truncated or references something unresolvable."""

    default_stage = "notes"


class UnsupportedFeature(DecodeError):
    """The file declares custom instruments, which this codec does not persist."""

    default_stage = "instruments"


class EncodingInconsistency(NbsError, RuntimeError):
    """The measure and emit passes of the encoder disagreed on the output size."""


class UnencodableSong(NbsError, ValueError):
    """The in-memory song holds a value the wire format cannot represent."""
