"""nbsong CLI entry point."""

import sys
from pathlib import Path

import click

from nbsong import __version__
from nbsong.errors import DecodeError, UnencodableSong, UnsupportedFeature
from nbsong.song_editor import format_key
from nbsong.song_file import load_song, save_song
from nbsong.song_models import Song


def _load_or_exit(nbs_file: str) -> Song:
    """Decode ``nbs_file``, printing the error and exiting 1 on failure."""
    try:
        return load_song(nbs_file)
    except UnsupportedFeature as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        click.echo("  Songs with custom instruments cannot be read by nbsong.", err=True)
        sys.exit(1)
    except DecodeError as exc:
        click.echo(f"  ERROR: Not a valid .nbs file — {exc}", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"  ERROR: Could not read '{nbs_file}' — {exc}", err=True)
        sys.exit(1)


def _format_duration(milliseconds: float) -> str:
    total_seconds = int(milliseconds // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes}:{seconds:02d}"


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="nbsong")
def main() -> None:
    """nbsong — read, inspect, rewrite and render note-block songs (.nbs)."""


# ── info subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("nbs_file", type=click.Path(exists=True, dir_okay=False, readable=True))
def info(nbs_file: str) -> None:
    """
    Print the metadata and layer table of a song.

    \b
    Examples:
      nbsong info my_song.nbs
    """
    song = _load_or_exit(nbs_file)

    click.echo(f"  Name            : {song.name or '(untitled)'}")
    click.echo(f"  Author          : {song.author}")
    click.echo(f"  Original author : {song.original_author}")
    if song.description:
        click.echo(f"  Description     : {song.description}")
    click.echo(f"  Tempo           : {song.tempo:.2f} ticks/s")
    click.echo(f"  Length          : {song.size} ticks  ({_format_duration(song.end_time)})")
    click.echo(f"  Time signature  : {song.time_signature}/4")
    click.echo(f"  Notes           : {song.note_count}")
    click.echo(f"  Minutes spent   : {song.minutes_spent}")
    click.echo(f"  Clicks (L/R)    : {song.left_clicks} / {song.right_clicks}")
    click.echo(f"  Blocks (+/-)    : {song.blocks_added} / {song.blocks_removed}")
    if song.midi_name:
        click.echo(f"  Imported from   : {song.midi_name}")
    click.echo()

    click.echo(f"  Layers ({len(song.layers)}):")
    for index, layer in enumerate(song.layers):
        bar = "=" * round(layer.volume * 10)
        click.echo(
            f"    {index:3d}  {layer.display_name:<20}  {layer.volume * 100:5.0f}%  "
            f"{bar:<10}  {len(layer.notes)} note(s)"
        )


# ── notes subcommand ───────────────────────────────────────────────────────────

@main.command()
@click.argument("nbs_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--layer",
    "layer_index",
    type=click.IntRange(min=0),
    default=None,
    metavar="INDEX",
    help="Only list notes of this layer (0-based).",
)
def notes(nbs_file: str, layer_index: int | None) -> None:
    """
    List every note as TICK LAYER INSTRUMENT KEY.

    \b
    Examples:
      nbsong notes my_song.nbs
      nbsong notes my_song.nbs --layer 2
    """
    song = _load_or_exit(nbs_file)

    if layer_index is not None and layer_index >= len(song.layers):
        click.echo(
            f"  ERROR: Layer {layer_index} does not exist (song has {len(song.layers)}).",
            err=True,
        )
        sys.exit(1)

    for tick, index, note in song.iter_notes():
        if layer_index is not None and index != layer_index:
            continue
        click.echo(
            f"{tick:6d}  {index:3d}  {note.instrument.name:<12}  "
            f"{note.key:3d} {format_key(note.key)}"
        )


# ── recode subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("nbs_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    required=True,
    metavar="PATH",
    help="Destination .nbs file.",
)
def recode(nbs_file: str, output: str) -> None:
    """
    Read a song and write it back out in canonical form.

    Layer volumes are stored in whole percent, so any finer volume is
    truncated. Songs with custom instruments are refused.

    \b
    Examples:
      nbsong recode old_song.nbs -o clean_song.nbs
    """
    click.echo(f"nbsong v{__version__}")
    click.echo(f"[1/2] Reading '{nbs_file}'...")
    song = _load_or_exit(nbs_file)
    click.echo(f"      {song.note_count} note(s) on {len(song.layers)} layer(s)")

    click.echo(f"[2/2] Writing '{output}'...")
    try:
        written = save_song(song, output)
    except UnencodableSong as exc:
        click.echo(f"  ERROR: Song cannot be stored as .nbs — {exc}", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write output file — {exc}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"Done!  Wrote {written} byte(s) to '{output}'.")


# ── render subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("nbs_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--samples",
    "sample_dir",
    required=True,
    type=click.Path(exists=True, file_okay=False),
    metavar="DIR",
    help="Directory holding the instrument samples (harp.ogg, dbass.ogg, ...).",
)
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination WAV file. Defaults to <song>.wav.",
)
@click.option(
    "--sample-rate",
    type=click.IntRange(8000, 96000),
    default=22050,
    show_default=True,
    help="Output sample rate in Hz.",
)
def render(nbs_file: str, sample_dir: str, output: str | None, sample_rate: int) -> None:
    """
    Mix a song down to a WAV file using instrument samples.

    \b
    Examples:
      nbsong render my_song.nbs --samples assets/instruments/audio
      nbsong render my_song.nbs --samples samples/ -o preview.wav --sample-rate 44100
    """
    from nbsong.playback import SampleMixer

    resolved_output = output if output is not None else str(Path(nbs_file).with_suffix(".wav"))

    click.echo(f"nbsong v{__version__}")
    click.echo(f"  Song    : {nbs_file}")
    click.echo(f"  Samples : {sample_dir}")
    click.echo(f"  Output  : {resolved_output}")
    click.echo()

    click.echo("[1/2] Reading song...")
    song = _load_or_exit(nbs_file)

    click.echo(f"[2/2] Mixing {song.note_count} note(s) at {song.tempo:.2f} ticks/s...")
    mixer = SampleMixer(sample_dir, instruments=song.instruments, sample_rate=sample_rate)
    try:
        seconds = mixer.render_to_file(song, resolved_output)
    except FileNotFoundError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(1)
    except ValueError as exc:
        click.echo(f"  ERROR: Could not render song — {exc}", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write WAV file — {exc}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"Done!  Wrote {seconds:.1f} s of audio to '{resolved_output}'.")
