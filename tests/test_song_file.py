"""Unit tests for file loading/saving and SongSession."""

import pytest

from nbs_bytes import header, layer_info, note_stream
from nbsong.errors import MalformedHeader, UnsupportedFeature
from nbsong.song_file import SongSession, load_song, save_song
from nbsong.song_models import Note, Song


def _sample_song() -> Song:
    song = Song.blank(layer_count=2)
    song.name = "Saved"
    song.set_note(song.layers[1], 4, Note(key=50))
    return song


def test_save_then_load(tmp_path) -> None:
    path = tmp_path / "song.nbs"
    written = save_song(_sample_song(), path)
    assert path.stat().st_size == written

    song = load_song(path)
    assert song.name == "Saved"
    assert song.layers[1].notes[4].key == 50


def test_failed_encode_leaves_no_file(tmp_path) -> None:
    song = _sample_song()
    song.author = "♪"
    path = tmp_path / "broken.nbs"
    with pytest.raises(ValueError):
        save_song(song, path)
    assert not path.exists()


def test_session_load_replaces_song(tmp_path) -> None:
    path = tmp_path / "song.nbs"
    save_song(_sample_song(), path)

    session = SongSession()
    song = session.load(path)
    assert session.song is song
    assert session.path == path


def test_session_keeps_previous_song_on_failed_load(tmp_path) -> None:
    bad = tmp_path / "bad.nbs"
    bad.write_bytes(b"\x01")

    session = SongSession(_sample_song())
    previous = session.song
    with pytest.raises(MalformedHeader):
        session.load(bad)
    assert session.song is previous
    assert session.path is None


def test_session_keeps_previous_song_on_custom_instruments() -> None:
    data = header(layers=1) + note_stream([]) + layer_info([("x", 100)]) + b"\x01"
    session = SongSession(_sample_song())
    previous = session.song
    with pytest.raises(UnsupportedFeature):
        session.load_bytes(data)
    assert session.song is previous


def test_session_save_adds_suffix(tmp_path) -> None:
    session = SongSession(_sample_song())
    target = session.save(tmp_path / "export")
    assert target.name == "export.nbs"
    assert load_song(target).name == "Saved"

    # Saving again without a path reuses the last one.
    assert session.save() == target


def test_session_save_without_path_raises() -> None:
    with pytest.raises(ValueError):
        SongSession().save()
