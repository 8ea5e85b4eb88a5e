"""nbsong: reader and writer for note-block song (.nbs) files."""

from nbsong.errors import (
    DecodeError,
    EncodingInconsistency,
    MalformedHeader,
    MalformedNoteStream,
    NbsError,
    UnencodableSong,
    UnsupportedFeature,
)
from nbsong.song_decoder import SongDecoder, decode
from nbsong.song_encoder import SongEncoder, encode
from nbsong.song_models import BUILTIN_INSTRUMENTS, Instrument, Layer, Note, Song

__version__ = "0.1.0"

__all__ = [
    "BUILTIN_INSTRUMENTS",
    "DecodeError",
    "EncodingInconsistency",
    "Instrument",
    "Layer",
    "MalformedHeader",
    "MalformedNoteStream",
    "NbsError",
    "Note",
    "Song",
    "SongDecoder",
    "SongEncoder",
    "UnencodableSong",
    "UnsupportedFeature",
    "decode",
    "encode",
]
