"""SongDecoder: turns the bytes of a .nbs file into a Song."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from nbsong.binary_io import BinaryReader
from nbsong.errors import (
    MalformedHeader,
    MalformedNoteStream,
    TruncatedData,
    UnsupportedFeature,
)
from nbsong.song_models import BUILTIN_INSTRUMENTS, Instrument, Layer, Note, Song

# The layer count is stored as an int16, so the last addressable index is one less.
MAX_LAYER_INDEX = 2**15 - 2


@dataclass(frozen=True)
class RawNote:
    """A note as it appears in the stream, before instruments and layers are resolved."""

    tick: int
    layer: int
    instrument_id: int
    key: int


@dataclass(frozen=True)
class _Header:
    size: int
    total_layers: int
    name: str
    author: str
    original_author: str
    description: str
    raw_tempo: int
    time_signature: int
    minutes_spent: int
    left_clicks: int
    right_clicks: int
    blocks_added: int
    blocks_removed: int
    midi_name: str


@dataclass(frozen=True)
class _LayerInfo:
    name: str = ""
    volume: float = 1.0


class SongDecoder:
    """
    Parses a .nbs buffer in four stages.

    Stages
    ------
    A. **Header** – fixed sequence of metadata fields.

    B. **Note stream** – two nested "jump" loops. The outer loop reads an
       int16 tick jump (0 ends the stream), the inner loop reads int16 layer
       jumps (0 ends the tick), each followed by an int8 instrument id and
       an int8 key. Both cursors start at -1 so the first jump lands on a
       real index.

    C. **Layer metadata** – name and volume per declared layer. Older files
       stop right after the note stream; those layers get defaults.

    D. **Resolution** – a separate pass that creates any layer the stream
       referenced but the file never declared, resolves instrument ids and
       attaches notes.

    Nothing is built until every stage has read its bytes, so a failure
    never yields a half-populated Song.
    """

    def __init__(self, instruments: Sequence[Instrument] = BUILTIN_INSTRUMENTS) -> None:
        """
        Args:
            instruments: Instrument table that note instrument ids index into.
        """
        self.instruments = list(instruments)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _read_header(self, reader: BinaryReader) -> _Header:
        try:
            size = reader.read_short()
            total_layers = reader.read_short()
            name = reader.read_string()
            author = reader.read_string()
            original_author = reader.read_string()
            description = reader.read_string()
            raw_tempo = reader.read_short()
            reader.read_byte()  # auto-save enabled
            reader.read_byte()  # auto-save duration
            time_signature = reader.read_byte()
            minutes_spent = reader.read_int()
            left_clicks = reader.read_int()
            right_clicks = reader.read_int()
            blocks_added = reader.read_int()
            blocks_removed = reader.read_int()
            midi_name = reader.read_string()
        except TruncatedData as exc:
            raise MalformedHeader(str(exc), offset=exc.offset) from exc

        if size < 0:
            raise MalformedHeader(f"negative song size {size}", offset=0)
        if total_layers < 0:
            raise MalformedHeader(f"negative layer count {total_layers}", offset=2)

        return _Header(
            size=size,
            total_layers=total_layers,
            name=name,
            author=author,
            original_author=original_author,
            description=description,
            raw_tempo=raw_tempo,
            time_signature=time_signature,
            minutes_spent=minutes_spent,
            left_clicks=left_clicks,
            right_clicks=right_clicks,
            blocks_added=blocks_added,
            blocks_removed=blocks_removed,
            midi_name=midi_name,
        )

    def _read_jump(self, reader: BinaryReader, kind: str) -> int:
        offset = reader.offset
        jump = reader.read_short()
        if jump < 0:
            raise MalformedNoteStream(f"negative {kind} jump {jump}", offset=offset)
        return jump

    def _read_note_stream(self, reader: BinaryReader) -> list[RawNote]:
        raw_notes: list[RawNote] = []
        current_tick = -1
        try:
            while True:
                tick_jump = self._read_jump(reader, "tick")
                if tick_jump == 0:
                    break
                current_tick += tick_jump

                current_layer = -1
                while True:
                    jump_offset = reader.offset
                    layer_jump = self._read_jump(reader, "layer")
                    if layer_jump == 0:
                        break
                    current_layer += layer_jump
                    if current_layer > MAX_LAYER_INDEX:
                        raise MalformedNoteStream(
                            f"layer index {current_layer} exceeds {MAX_LAYER_INDEX}",
                            offset=jump_offset,
                        )
                    instrument_id = reader.read_byte()
                    key = reader.read_byte()
                    raw_notes.append(RawNote(current_tick, current_layer, instrument_id, key))
        except TruncatedData as exc:
            raise MalformedNoteStream(str(exc), offset=exc.offset) from exc
        return raw_notes

    def _read_layer_info(self, reader: BinaryReader, total_layers: int) -> list[_LayerInfo]:
        infos: list[_LayerInfo] = []
        try:
            for _ in range(total_layers):
                if reader.remaining == 0:
                    infos.append(_LayerInfo())
                    continue
                name = reader.read_string()
                volume_offset = reader.offset
                raw_volume = reader.read_byte()
                if not 0 <= raw_volume <= 100:
                    raise MalformedNoteStream(
                        f"layer volume {raw_volume} is outside 0-100",
                        offset=volume_offset,
                        stage="layers",
                    )
                infos.append(_LayerInfo(name=name, volume=raw_volume / 100))
        except TruncatedData as exc:
            raise MalformedNoteStream(str(exc), offset=exc.offset, stage="layers") from exc
        return infos

    def _check_custom_instruments(self, reader: BinaryReader) -> None:
        if reader.remaining == 0:
            return
        offset = reader.offset
        count = reader.read_unsigned_byte()
        if count:
            raise UnsupportedFeature(
                f"file declares {count} custom instrument(s), which are not supported",
                offset=offset,
            )

    def _resolve(self, header: _Header, infos: list[_LayerInfo], raw_notes: list[RawNote]) -> Song:
        song = Song(
            name=header.name,
            author=header.author,
            original_author=header.original_author,
            description=header.description,
            tempo=header.raw_tempo / 100,
            time_signature=header.time_signature,
            minutes_spent=header.minutes_spent,
            left_clicks=header.left_clicks,
            right_clicks=header.right_clicks,
            blocks_added=header.blocks_added,
            blocks_removed=header.blocks_removed,
            midi_name=header.midi_name,
            instruments=list(self.instruments),
        )
        for info in infos:
            layer = song.add_layer()
            layer.name = info.name
            layer.volume = info.volume

        # Some files place notes on layers they never declare; grow to fit.
        highest_layer = max((rn.layer for rn in raw_notes), default=-1)
        while len(song.layers) <= highest_layer:
            song.add_layer()

        for rn in raw_notes:
            if not 0 <= rn.instrument_id < len(song.instruments):
                raise MalformedNoteStream(
                    f"note at tick {rn.tick}, layer {rn.layer} uses unknown "
                    f"instrument id {rn.instrument_id}",
                    stage="resolve",
                )
            note = Note(key=rn.key, instrument=song.instruments[rn.instrument_id])
            song.set_note(song.layers[rn.layer], rn.tick, note)

        song.size = header.size
        return song

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def decode(self, data: bytes) -> Song:
        """
        Parse a complete .nbs buffer.

        Args:
            data: Raw file contents.

        Returns:
            The decoded Song. ``size`` is taken from the header as-is.

        Raises:
            MalformedHeader:     The buffer ends inside the header.
            MalformedNoteStream: The note stream or layer section is
                                 truncated or out of range, or a note
                                 cannot be resolved.
            UnsupportedFeature:  The file declares custom instruments.
        """
        reader = BinaryReader(data)
        header = self._read_header(reader)
        raw_notes = self._read_note_stream(reader)
        infos = self._read_layer_info(reader, header.total_layers)
        self._check_custom_instruments(reader)
        return self._resolve(header, infos, raw_notes)


def decode(data: bytes) -> Song:
    """Decode ``data`` with the built-in instrument table."""
    return SongDecoder().decode(data)
