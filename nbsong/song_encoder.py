"""SongEncoder: serializes a Song into the .nbs binary layout."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final

from nbsong.binary_io import BufferSink, ByteSink, CountingSink
from nbsong.errors import UnencodableSong
from nbsong.song_models import Song

# Absorbs float error so that e.g. 0.29 * 100 == 28.999999999999996 still
# quantizes to 29. Genuine fractions like 0.555 are still truncated.
_VOLUME_EPSILON: Final[float] = 1e-9


@dataclass(frozen=True)
class _PlannedTick:
    tick: int
    cells: tuple[tuple[int, int, int], ...]  # (layer index, instrument id, key)


class SongEncoder:
    """
    Writes a Song as a .nbs buffer.

    The byte layout lives in exactly one routine, ``write_plan``. ``encode``
    runs it twice: once against a CountingSink to learn the output size,
    then against a BufferSink preallocated to that size. Any disagreement
    between the two passes is an EncodingInconsistency.

    Custom instruments are never written; the trailing instrument count is
    always 0.
    """

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _plan_notes(self, song: Song) -> list[_PlannedTick]:
        """Snapshot every populated tick, in tick then layer order."""
        if song.max_tick >= song.size:
            raise UnencodableSong(
                f"song has a note at tick {song.max_tick} but size is {song.size}"
            )
        instrument_ids = {instrument: index for index, instrument in enumerate(song.instruments)}

        planned: list[_PlannedTick] = []
        for tick in range(song.size):
            cells = []
            for layer_index, _layer, note in song.notes_at(tick):
                instrument_id = instrument_ids.get(note.instrument)
                if instrument_id is None:
                    raise UnencodableSong(
                        f"note at tick {tick}, layer {layer_index} uses instrument "
                        f"{note.instrument.name!r}, which is not in the song's instrument table"
                    )
                cells.append((layer_index, instrument_id, note.key))
            if cells:
                planned.append(_PlannedTick(tick, tuple(cells)))

        return planned

    def _raw_tempo(self, song: Song) -> int:
        return round(song.tempo * 100)

    def _raw_volume(self, volume: float, layer_index: int) -> int:
        if not 0.0 <= volume <= 1.0:
            raise UnencodableSong(f"layer {layer_index} volume {volume} is outside 0.0-1.0")
        return math.floor(volume * 100 + _VOLUME_EPSILON)

    def _write(self, song: Song, planned: list[_PlannedTick], sink: ByteSink) -> None:
        # Header
        sink.write_short(song.size, what="size")
        sink.write_short(len(song.layers), what="layer count")
        sink.write_string(song.name, what="name")
        sink.write_string(song.author, what="author")
        sink.write_string(song.original_author, what="original author")
        sink.write_string(song.description, what="description")
        sink.write_short(self._raw_tempo(song), what="tempo")
        sink.write_byte(0, what="auto-save enabled")
        sink.write_byte(0, what="auto-save duration")
        sink.write_byte(song.time_signature, what="time signature")
        sink.write_int(song.minutes_spent, what="minutes spent")
        sink.write_int(song.left_clicks, what="left clicks")
        sink.write_int(song.right_clicks, what="right clicks")
        sink.write_int(song.blocks_added, what="blocks added")
        sink.write_int(song.blocks_removed, what="blocks removed")
        sink.write_string(song.midi_name, what="midi name")

        # Note stream
        last_tick = -1
        for entry in planned:
            sink.write_short(entry.tick - last_tick, what="tick jump")
            last_tick = entry.tick
            last_layer = -1
            for layer_index, instrument_id, key in entry.cells:
                sink.write_short(layer_index - last_layer, what="layer jump")
                last_layer = layer_index
                sink.write_byte(instrument_id, what="instrument id")
                sink.write_byte(key, what="key")
            sink.write_short(0, what="layer terminator")
        sink.write_short(0, what="tick terminator")

        # Layer metadata
        for index, layer in enumerate(song.layers):
            sink.write_string(layer.name, what=f"layer {index} name")
            sink.write_byte(self._raw_volume(layer.volume, index), what=f"layer {index} volume")

        # Custom instruments
        sink.write_unsigned_byte(0, what="custom instrument count")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def write_plan(self, song: Song, sink: ByteSink) -> None:
        """
        Run the full .nbs write sequence for ``song`` against ``sink``.

        Does not mutate ``song``.
        """
        self._write(song, self._plan_notes(song), sink)

    def measure(self, song: Song) -> int:
        """Return the encoded size of ``song`` in bytes."""
        counter = CountingSink()
        self.write_plan(song, counter)
        return counter.size

    def encode(self, song: Song) -> bytes:
        """
        Serialize ``song``.

        Returns:
            The complete .nbs file contents.

        Raises:
            UnencodableSong:       A value does not fit the format.
            EncodingInconsistency: The measure and emit passes diverged.
        """
        planned = self._plan_notes(song)

        counter = CountingSink()
        self._write(song, planned, counter)

        buffer = BufferSink(counter.size)
        self._write(song, planned, buffer)
        return buffer.getvalue()


def encode(song: Song) -> bytes:
    """Encode ``song`` with a default SongEncoder."""
    return SongEncoder().encode(song)
