"""SongEditor: note editing helpers shared by editor front-ends."""

from __future__ import annotations

from typing import Final

from nbsong.song_models import Instrument, Layer, Note, Song

#: Key names starting at key 1. Key 0 wraps to the last entry.
KEY_TEXT: Final[list[str]] = [
    "A#", "B-", "C-", "C#", "D-", "D#", "E-", "F-", "F#", "G-", "G#", "A-",
]


def format_key(key: int) -> str:
    """
    Format a note key as "{name}{octave}", e.g. 45 -> "F#4".

    Octaves are counted from key 1 in blocks of twelve, so key 1 is "A#1"
    and key 12 is "A-1".
    """
    name = KEY_TEXT[(key - 1) % 12]
    octave = (key - 1) // 12 + 1
    return f"{name}{octave}"


class SongEditor:
    """
    Editing operations on a Song, addressed by layer object or index.

    Keeps the "brush" used by place_note: the key and instrument the next
    placed note will get.
    """

    DEFAULT_KEY = 45

    def __init__(self, song: Song, key: int = DEFAULT_KEY) -> None:
        self.song = song
        self.current_key = key
        self.current_instrument: Instrument = song.instruments[0]

    def get_layer(self, layer: Layer | int) -> Layer:
        """
        Resolve ``layer`` to a Layer of this song.

        Raises:
            KeyError: If an index is out of range or the Layer belongs elsewhere.
        """
        if isinstance(layer, Layer):
            if any(existing is layer for existing in self.song.layers):
                return layer
        elif isinstance(layer, int) and 0 <= layer < len(self.song.layers):
            return self.song.layers[layer]
        raise KeyError(f"Unknown layer: {layer!r}")

    def place_note(self, layer: Layer | int, tick: int) -> Note:
        """Place a note with the current key and instrument."""
        return self.set_note(layer, tick, self.current_key, self.current_instrument)

    def get_note(self, layer: Layer | int, tick: int) -> Note | None:
        return self.get_layer(layer).notes.get(tick)

    def set_note(self, layer: Layer | int, tick: int, key: int, instrument: Instrument) -> Note:
        note = Note(key=key, instrument=instrument)
        self.song.set_note(self.get_layer(layer), tick, note)
        return note

    def delete_note(self, layer: Layer | int, tick: int) -> Note | None:
        return self.song.remove_note(self.get_layer(layer), tick)

    def format_key(self, key: int) -> str:
        return format_key(key)
