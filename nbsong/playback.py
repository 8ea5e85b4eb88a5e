"""Playback: transport position, the note-player interface and an offline mixer."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import librosa
import numpy as np
import soundfile as sf

from nbsong.song_models import BUILTIN_INSTRUMENTS, Instrument, Song

SEMITONES_PER_OCTAVE = 12


class NotePlayer(ABC):
    """
    Abstract sink for sounding notes.

    A note's key is relative to ``key_offset``: a note with key == key_offset
    plays its instrument sample unmodified, each key above or below shifts
    the sample by one semitone.
    """

    KEY_OFFSET = 45

    def __init__(self, key_offset: int = KEY_OFFSET) -> None:
        self.key_offset = key_offset

    def playback_rate(self, key: int) -> float:
        """Speed factor applied to the instrument sample for ``key``."""
        return 2 ** ((key - self.key_offset) / SEMITONES_PER_OCTAVE)

    @abstractmethod
    def resolve(self, instrument_id: int) -> Any:
        """Return the audio asset for ``instrument_id``."""

    @abstractmethod
    def play(self, key: int, instrument: Instrument, volume: float) -> None:
        """Sound one note at ``volume`` (0.0-1.0)."""


class Transport:
    """
    Playback position of a song.

    ``current_tick`` is fractional; ``advance`` moves it forward by real
    time and sends every note on each tick it crosses to the player, with
    the owning layer's volume.
    """

    def __init__(self, song: Song, player: NotePlayer, loop: bool = False) -> None:
        self.song = song
        self.player = player
        self.loop = loop
        self.current_tick = 0.0
        self.paused = True
        self._next_tick = 0

    @property
    def tick(self) -> int:
        """The tick currently under the playhead."""
        return math.floor(self.current_tick)

    @property
    def current_time(self) -> float:
        """Playhead position in milliseconds."""
        return self.current_tick * self.song.time_per_tick

    def play(self) -> None:
        """Start playing; rewinds first if the playhead is at the end."""
        if self.current_tick >= self.song.playback_length:
            self.current_tick = 0.0
        self._next_tick = math.ceil(self.current_tick)
        self.paused = False

    def pause(self) -> None:
        self.paused = True

    def seek(self, tick: float) -> None:
        self.current_tick = max(0.0, float(tick))
        self._next_tick = math.ceil(self.current_tick)

    def advance(self, elapsed_ms: float) -> list[int]:
        """
        Move the playhead by ``elapsed_ms`` and sound the crossed ticks.

        Returns:
            The ticks whose notes were sent to the player, in order.
        """
        if self.paused:
            return []

        length = self.song.playback_length
        target = self.current_tick + elapsed_ms / self.song.time_per_tick
        played = self._sound_until(target, length)

        if target >= length:
            if self.loop and length > 0:
                # Carry the overshoot into the next pass.
                target %= length
                self._next_tick = 0
                played += self._sound_until(target, length)
            else:
                target = float(length)
                self.paused = True
        self.current_tick = target
        return played

    def _sound_until(self, target: float, length: int) -> list[int]:
        last = min(math.floor(target), length - 1)
        ticks = list(range(self._next_tick, last + 1))
        for tick in ticks:
            self._sound_tick(tick)
        self._next_tick = max(self._next_tick, last + 1)
        return ticks

    def _sound_tick(self, tick: int) -> None:
        for _index, layer, note in self.song.notes_at(tick):
            self.player.play(note.key, note.instrument, layer.volume)


class SampleMixer(NotePlayer):
    """
    Offline NotePlayer that mixes instrument samples into a numpy buffer.

    Samples are looked up by file name (``Instrument.audio_src``) inside
    ``sample_dir`` and loaded with librosa. Pitch is changed by resampling,
    so higher keys are also shorter, like a speed-up on playback.

    Usage:

        mixer = SampleMixer("assets/instruments/audio")
        mixer.render_to_file(song, "song.wav")
    """

    SAMPLE_RATE = 22050

    def __init__(
        self,
        sample_dir: str | Path,
        instruments: Sequence[Instrument] = BUILTIN_INSTRUMENTS,
        sample_rate: int = SAMPLE_RATE,
        key_offset: int = NotePlayer.KEY_OFFSET,
    ) -> None:
        super().__init__(key_offset=key_offset)
        self.sample_dir = Path(sample_dir)
        self.instruments = list(instruments)
        self.sample_rate = sample_rate
        self._samples: dict[int, np.ndarray] = {}
        self._pitched: dict[tuple[int, int], np.ndarray] = {}
        self._events: list[tuple[int, np.ndarray]] = []
        self._cursor = 0

    # ------------------------------------------------------------------
    # NotePlayer
    # ------------------------------------------------------------------

    def resolve(self, instrument_id: int) -> np.ndarray:
        """
        Load (and cache) the mono sample for ``instrument_id``.

        Raises:
            FileNotFoundError: If the sample file is missing.
        """
        if instrument_id not in self._samples:
            instrument = self.instruments[instrument_id]
            path = self.sample_dir / Path(instrument.audio_src).name
            if not path.exists():
                raise FileNotFoundError(
                    f"Sample for '{instrument.name}' not found at '{path}'."
                )
            y, _sr = librosa.load(str(path), sr=self.sample_rate, mono=True)
            self._samples[instrument_id] = y
        return self._samples[instrument_id]

    def play(self, key: int, instrument: Instrument, volume: float) -> None:
        """Queue the note at the current mix cursor."""
        if volume <= 0:
            return
        self._events.append((self._cursor, self._pitched_sample(key, instrument) * volume))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _pitched_sample(self, key: int, instrument: Instrument) -> np.ndarray:
        cache_key = (instrument.id, key)
        if cache_key not in self._pitched:
            sample = self.resolve(instrument.id)
            rate = self.playback_rate(key)
            if rate == 1.0:
                pitched = sample
            else:
                pitched = librosa.resample(
                    sample,
                    orig_sr=self.sample_rate,
                    target_sr=max(1, round(self.sample_rate / rate)),
                )
            self._pitched[cache_key] = pitched
        return self._pitched[cache_key]

    def _mixdown(self) -> np.ndarray:
        length = max((start + len(clip) for start, clip in self._events), default=0)
        mix = np.zeros(length, dtype=np.float32)
        for start, clip in self._events:
            mix[start : start + len(clip)] += clip
        peak = float(np.max(np.abs(mix))) if length else 0.0
        if peak > 1.0:
            mix /= peak
        return mix

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(self, song: Song) -> np.ndarray:
        """
        Mix every note of ``song`` at its tick's time.

        Returns:
            Mono float32 audio at ``sample_rate``, peak-normalized if it clips.
        """
        if song.tempo <= 0:
            raise ValueError(f"Cannot render a song with tempo {song.tempo}")
        self._events = []
        samples_per_tick = song.time_per_tick * self.sample_rate / 1000.0
        for tick in range(song.playback_length):
            self._cursor = round(tick * samples_per_tick)
            for _index, layer, note in song.notes_at(tick):
                self.play(note.key, note.instrument, layer.volume)
        mix = self._mixdown()
        self._events = []
        return mix

    def render_to_file(self, song: Song, output_path: str) -> float:
        """
        Render ``song`` and write it as a WAV file.

        Returns:
            Duration of the written audio in seconds.

        Raises:
            FileNotFoundError: If an instrument sample is missing.
            OSError: If the output file cannot be written.
        """
        audio = self.render(song)
        sf.write(output_path, audio, self.sample_rate)
        return len(audio) / self.sample_rate
