"""Reading and writing .nbs files on disk."""

from __future__ import annotations

from pathlib import Path

from nbsong.song_decoder import SongDecoder
from nbsong.song_encoder import SongEncoder
from nbsong.song_models import Song

NBS_SUFFIX = ".nbs"


def load_song(path: str | Path) -> Song:
    """
    Read and decode a .nbs file.

    Raises:
        OSError: If the file cannot be read.
        DecodeError: If the contents are not a valid .nbs song.
    """
    data = Path(path).read_bytes()
    return SongDecoder().decode(data)


def save_song(song: Song, path: str | Path) -> int:
    """
    Encode ``song`` and write it to ``path``.

    The song is fully encoded before the file is opened, so an encoding
    failure never leaves a partial file behind.

    Returns:
        Number of bytes written.
    """
    data = SongEncoder().encode(song)
    Path(path).write_bytes(data)
    return len(data)


class SongSession:
    """
    Holds the currently loaded song.

    ``load`` only replaces the current song once the new file has decoded
    successfully; on any error the previous song stays in place.
    """

    def __init__(self, song: Song | None = None) -> None:
        self.song = song if song is not None else Song.blank()
        self.path: Path | None = None

    def load(self, path: str | Path) -> Song:
        song = load_song(path)
        self.song = song
        self.path = Path(path)
        return song

    def load_bytes(self, data: bytes) -> Song:
        song = SongDecoder().decode(data)
        self.song = song
        self.path = None
        return song

    def save(self, path: str | Path | None = None) -> Path:
        """
        Write the current song to ``path`` (or the path it was loaded from).

        Raises:
            ValueError: If no path is given and the song was not loaded from a file.
        """
        target = Path(path) if path is not None else self.path
        if target is None:
            raise ValueError("No path given and the current song has no file path.")
        if target.suffix != NBS_SUFFIX:
            target = target.with_suffix(NBS_SUFFIX)
        save_song(self.song, target)
        self.path = target
        return target
