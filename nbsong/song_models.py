"""In-memory song model read and written by the .nbs codec."""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Final


@dataclass(frozen=True)
class Instrument:
    """
    A playable sound.

    Attributes:
        name:        Display name, e.g. "Piano/Harp".
        id:          Position in the instrument table; this is the wire id.
        audio_src:   Relative path of the sound sample.
        texture_src: Relative path of the editor icon.
    """

    name: str
    id: int
    audio_src: str = ""
    texture_src: str = ""


def _builtin(instrument_id: int, name: str, stem: str, texture: str | None = None) -> Instrument:
    return Instrument(
        name=name,
        id=instrument_id,
        audio_src=f"instruments/audio/{stem}.ogg",
        texture_src=f"instruments/textures/{texture or stem}.png",
    )


#: Built-in instrument table. Order is significant: index == wire id.
BUILTIN_INSTRUMENTS: Final[tuple[Instrument, ...]] = (
    _builtin(0, "Piano/Harp", "harp"),
    _builtin(1, "Double Bass", "dbass"),
    _builtin(2, "Bass Drum", "bdrum"),
    _builtin(3, "Snare Drum", "sdrum"),
    _builtin(4, "Click", "click"),
    _builtin(5, "Guitar", "guitar"),
    _builtin(6, "Flute", "flute"),
    _builtin(7, "Bell", "bell"),
    _builtin(8, "Chime", "chime"),
    _builtin(9, "Xylophone", "xylobone", texture="xylophone"),
)


@dataclass
class Note:
    """A note block. Its (tick, layer) position is where it is stored."""

    key: int = 45
    instrument: Instrument = BUILTIN_INSTRUMENTS[0]


@dataclass
class Layer:
    """
    An independent note lane.

    Attributes:
        id:     Identifier assigned at creation (1-based). Not guaranteed
                unique once layers have been deleted.
        name:   Display name; empty means "use the placeholder".
        volume: Lane volume, 0.0-1.0.
        notes:  Sparse tick -> Note mapping.
    """

    id: int
    name: str = ""
    volume: float = 1.0
    notes: dict[int, Note] = field(default_factory=dict)

    @property
    def placeholder(self) -> str:
        return f"Layer {self.id}"

    @property
    def display_name(self) -> str:
        return self.name or self.placeholder


@dataclass
class Song:
    """
    A note-block song.

    ``size`` is the tick count of the song. It grows when a note is placed
    at or past the end and is never shrunk by removing notes.
    """

    name: str = ""
    author: str = ""
    original_author: str = ""
    description: str = ""
    tempo: float = 5.0
    size: int = 0
    time_signature: int = 4
    minutes_spent: int = 0
    left_clicks: int = 0
    right_clicks: int = 0
    blocks_added: int = 0
    blocks_removed: int = 0
    midi_name: str = ""
    layers: list[Layer] = field(default_factory=list)
    instruments: list[Instrument] = field(default_factory=lambda: list(BUILTIN_INSTRUMENTS))

    @classmethod
    def blank(cls, layer_count: int = 5) -> "Song":
        """Return an empty song with ``layer_count`` unnamed layers."""
        song = cls()
        for _ in range(layer_count):
            song.add_layer()
        return song

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def add_layer(self) -> Layer:
        """Append a new layer and return it."""
        layer = Layer(id=len(self.layers) + 1)
        self.layers.append(layer)
        return layer

    def delete_layer(self, layer: Layer) -> None:
        # Layers compare by value, so look the object up by identity.
        for index, existing in enumerate(self.layers):
            if existing is layer:
                del self.layers[index]
                return
        raise ValueError(f"{layer.placeholder} is not part of this song")

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def set_note(self, layer: Layer, tick: int, note: Note) -> None:
        """Place ``note`` at ``tick`` in ``layer``, growing ``size`` if needed."""
        if tick < 0:
            raise ValueError(f"Tick must be non-negative, got {tick}")
        if tick >= self.size:
            self.size = tick + 1
        layer.notes[tick] = note

    def remove_note(self, layer: Layer, tick: int) -> Note | None:
        """Remove and return the note at ``tick`` in ``layer``; ``size`` is unchanged."""
        return layer.notes.pop(tick, None)

    def notes_at(self, tick: int) -> list[tuple[int, Layer, Note]]:
        """Return ``(layer_index, layer, note)`` for every layer with a note at ``tick``."""
        return [
            (index, layer, layer.notes[tick])
            for index, layer in enumerate(self.layers)
            if tick in layer.notes
        ]

    def iter_notes(self) -> Iterator[tuple[int, int, Note]]:
        """Yield ``(tick, layer_index, note)`` ordered by tick, then layer."""
        cells = [
            (tick, index, note)
            for index, layer in enumerate(self.layers)
            for tick, note in layer.notes.items()
        ]
        cells.sort(key=lambda cell: (cell[0], cell[1]))
        yield from cells

    @property
    def note_count(self) -> int:
        return sum(len(layer.notes) for layer in self.layers)

    @property
    def max_tick(self) -> int:
        """Highest occupied tick, or -1 for a song without notes."""
        return max((max(layer.notes) for layer in self.layers if layer.notes), default=-1)

    @property
    def playback_length(self) -> int:
        """Ticks to play: ``size``, or further if a decoded file holds notes past it."""
        return max(self.size, self.max_tick + 1)

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    @property
    def time_per_tick(self) -> float:
        """Milliseconds per tick at the current tempo."""
        if self.tempo <= 0:
            return math.inf
        return 1000.0 / self.tempo

    @property
    def end_time(self) -> float:
        """Song length in milliseconds."""
        if self.size == 0:
            return 0.0
        return self.size * self.time_per_tick
