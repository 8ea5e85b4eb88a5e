"""Unit tests for SongEncoder: layout, quantization and round-trips."""

import copy
import random
import struct

import pytest

from nbs_bytes import EMPTY_HEADER_SIZE, header, layer_info, note_stream
from nbsong.binary_io import CountingSink
from nbsong.errors import UnencodableSong
from nbsong.song_decoder import decode
from nbsong.song_encoder import SongEncoder, encode
from nbsong.song_models import BUILTIN_INSTRUMENTS, Instrument, Note, Song


def _song_with_layers(count: int, size: int = 0) -> Song:
    song = Song.blank(layer_count=count)
    song.size = size
    return song


def _place(song: Song, layer: int, tick: int, key: int = 45, instrument: int = 0) -> None:
    song.set_note(song.layers[layer], tick, Note(key=key, instrument=BUILTIN_INSTRUMENTS[instrument]))


def test_encodes_byte_for_byte_layout() -> None:
    song = _song_with_layers(2)
    song.name = "Song"
    song.author = "Me"
    song.tempo = 10.0
    song.time_signature = 3
    song.minutes_spent, song.left_clicks, song.right_clicks = 7, 11, 13
    song.blocks_added, song.blocks_removed = 17, 19
    song.layers[0].name = "Lead"
    song.layers[1].volume = 0.5
    _place(song, 0, 0, key=45, instrument=0)
    _place(song, 1, 3, key=50, instrument=7)
    song.size = 4

    expected = (
        header(
            size=4,
            layers=2,
            name="Song",
            author="Me",
            raw_tempo=1000,
            time_signature=3,
            stats=(7, 11, 13, 17, 19),
        )
        + note_stream([(1, [(1, 0, 45)]), (3, [(2, 7, 50)])])
        + layer_info([("Lead", 100), ("", 50)])
        + b"\x00"
    )
    assert encode(song) == expected


def test_sparse_ticks_emit_only_populated_records() -> None:
    song = _song_with_layers(3)
    _place(song, 0, 0)
    _place(song, 0, 5)
    _place(song, 2, 5)
    _place(song, 1, 5000)

    data = encode(song)
    stream = data[EMPTY_HEADER_SIZE:]

    expected_stream = struct.pack(
        "<h hbb h" "h hbb hbb h" "h hbb h" "h",
        1, 1, 0, 45, 0,
        5, 1, 0, 45, 2, 0, 45, 0,
        4995, 2, 0, 45, 0,
        0,
    )
    assert stream.startswith(expected_stream)
    assert stream[len(expected_stream):] == layer_info([("", 100)] * 3) + b"\x00"


def test_song_without_notes_has_only_stream_terminator() -> None:
    song = _song_with_layers(1, size=100)
    data = encode(song)
    assert data[EMPTY_HEADER_SIZE:] == struct.pack("<h", 0) + layer_info([("", 100)]) + b"\x00"


def test_measure_matches_encoded_length() -> None:
    song = _song_with_layers(4)
    song.description = "x" * 300
    for tick in range(0, 200, 7):
        _place(song, tick % 4, tick)
    assert SongEncoder().measure(song) == len(encode(song))


def test_write_plan_is_shared_by_both_passes() -> None:
    song = _song_with_layers(1)
    _place(song, 0, 2)
    counter = CountingSink()
    SongEncoder().write_plan(song, counter)
    assert counter.size == len(encode(song))


def test_encode_does_not_mutate_song() -> None:
    song = _song_with_layers(2)
    _place(song, 1, 9, key=60, instrument=3)
    song.layers[0].volume = 0.555
    before = copy.deepcopy(song)
    encode(song)
    assert song == before


@pytest.mark.parametrize("tempo", [0.01, 0.07, 2.5, 6.75, 10.0, 20.0, 327.67])
def test_tempo_multiples_of_hundredths_reencode_exactly(tempo: float) -> None:
    song = _song_with_layers(0)
    song.tempo = tempo
    data = encode(song)
    raw_tempo = struct.unpack_from("<h", data, 20)[0]
    assert raw_tempo == round(tempo * 100)

    redecoded = decode(data)
    assert encode(redecoded)[20:22] == data[20:22]


def test_raw_tempo_survives_decode_encode() -> None:
    data = header(raw_tempo=1000) + note_stream([]) + b"\x00"
    song = decode(data)
    assert song.tempo == 10.0
    assert encode(song) == data


def test_volume_is_truncated_to_whole_percent() -> None:
    song = _song_with_layers(1)
    song.layers[0].volume = 0.555
    data = encode(song)
    assert data[-2] == 55

    redecoded = decode(data)
    assert redecoded.layers[0].volume == pytest.approx(0.55)
    assert redecoded.layers[0].volume != pytest.approx(0.555)


@pytest.mark.parametrize("volume,expected", [(0.0, 0), (0.29, 29), (0.57, 57), (0.999, 99), (1.0, 100)])
def test_volume_quantization(volume: float, expected: int) -> None:
    song = _song_with_layers(1)
    song.layers[0].volume = volume
    assert encode(song)[-2] == expected


def test_round_trip_preserves_everything_representable() -> None:
    rng = random.Random(1234)
    song = _song_with_layers(6)
    song.name = "Round Trip"
    song.author = "Author"
    song.original_author = "Original"
    song.description = "Déjà vu"
    song.tempo = 12.34
    song.time_signature = 6
    song.minutes_spent = 99
    song.left_clicks = 1000
    song.right_clicks = 200
    song.blocks_added = 321
    song.blocks_removed = 12
    song.midi_name = "input.mid"
    for index, layer in enumerate(song.layers):
        layer.name = f"Layer #{index}" if index % 2 else ""
        layer.volume = rng.randint(0, 100) / 100

    placed = {}
    for _ in range(150):
        tick = rng.randrange(0, 3000)
        layer = rng.randrange(0, 6)
        key = rng.randrange(0, 88)
        instrument = rng.randrange(0, len(BUILTIN_INSTRUMENTS))
        _place(song, layer, tick, key=key, instrument=instrument)
        placed[(tick, layer)] = (key, instrument)
    song.size = 3100

    result = decode(encode(song))

    for field in (
        "name", "author", "original_author", "description", "tempo", "time_signature",
        "minutes_spent", "left_clicks", "right_clicks", "blocks_added", "blocks_removed",
        "midi_name", "size",
    ):
        assert getattr(result, field) == getattr(song, field), field

    decoded = {
        (tick, layer): (note.key, note.instrument.id) for tick, layer, note in result.iter_notes()
    }
    assert decoded == placed
    assert [layer.name for layer in result.layers] == [layer.name for layer in song.layers]
    for original, copied in zip(song.layers, result.layers):
        assert copied.volume == pytest.approx(round(original.volume, 2))


def test_empty_song_round_trips() -> None:
    song = Song()
    result = decode(encode(song))
    assert result.size == 0
    assert result.layers == []


def test_non_latin1_text_is_rejected() -> None:
    song = _song_with_layers(0)
    song.name = "音楽"
    with pytest.raises(UnencodableSong, match="name"):
        encode(song)


def test_notes_beyond_size_are_rejected() -> None:
    song = _song_with_layers(1)
    _place(song, 0, 50)
    song.size = 10
    with pytest.raises(UnencodableSong, match="tick 50"):
        encode(song)


def test_size_beyond_int16_is_rejected() -> None:
    song = _song_with_layers(1)
    song.size = 40000
    with pytest.raises(UnencodableSong, match="size"):
        encode(song)


def test_key_out_of_range_is_rejected() -> None:
    song = _song_with_layers(1)
    _place(song, 0, 0, key=200)
    with pytest.raises(UnencodableSong, match="key"):
        encode(song)


def test_volume_out_of_range_is_rejected() -> None:
    song = _song_with_layers(1)
    song.layers[0].volume = 1.5
    with pytest.raises(UnencodableSong, match="volume"):
        encode(song)


def test_instrument_outside_table_is_rejected() -> None:
    song = _song_with_layers(1)
    song.set_note(song.layers[0], 0, Note(key=45, instrument=Instrument(name="Custom", id=10)))
    with pytest.raises(UnencodableSong, match="Custom"):
        encode(song)
