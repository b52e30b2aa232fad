"""ChoirHelper CLI entry point."""

import logging
import re
import sys
from pathlib import Path

import click

from choirhelper import __version__
from choirhelper.errors import ChoirHelperError
from choirhelper.layout_engine import NotationLayoutEngine
from choirhelper.midi_exporter import MidiExporter
from choirhelper.models import Part, Score
from choirhelper.musicxml import MusicXMLParser
from choirhelper.scheduler import MidiScheduler
from choirhelper.staff_geometry import StaffGeometry
from choirhelper.storage import ScoreStorage

DEFAULT_WIDTH = 600.0
DEFAULT_STORE = "~/.choirhelper/scores"


def _title_to_filename(title: str) -> str:
    """Convert a score title to a safe MIDI filename."""
    sanitized = re.sub(r"[^\w\s-]", "", title)
    sanitized = re.sub(r"\s+", "_", sanitized.strip())
    return f"{sanitized or 'score'}.mid"


def _load_score(path: str) -> Score:
    """Parse ``path``, exiting with status 1 on any parse error."""
    try:
        return MusicXMLParser().parse_file(path)
    except ChoirHelperError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(1)


def _select_part(score: Score, name: str | None) -> Part:
    """Find a part by name or part type; the first user part (or first part) by default."""
    if name is None:
        user_parts = score.user_parts
        return user_parts[0] if user_parts else score.parts[0]

    wanted = name.lower()
    for part in score.parts:
        if part.name.lower() == wanted or part.part_type.value == wanted:
            return part
    available = ", ".join(part.name for part in score.parts)
    click.echo(f"  ERROR: No part named '{name}'. Available: {available}", err=True)
    sys.exit(1)


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="choirhelper")
@click.option("--verbose", "-v", is_flag=True, help="Print debug logging to stderr.")
def main(verbose: bool) -> None:
    """ChoirHelper: practise your choir part from a MusicXML score."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ── info subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("score_file", type=click.Path(dir_okay=False))
def info(score_file: str) -> None:
    """
    Summarise a MusicXML score: title, key, meter, tempo and parts.

    \b
    Examples:
      choirhelper info amazing_grace.musicxml
    """
    score = _load_score(score_file)

    click.echo(f"Title    : {score.title}")
    if score.composer:
        click.echo(f"Composer : {score.composer}")
    click.echo(f"Key      : {score.key_signature.display_name} {score.key_signature.mode.value}")
    click.echo(f"Time     : {score.time_signature.display_name}")
    click.echo(f"Tempo    : {score.tempo} BPM")
    click.echo(f"Measures : {score.measure_count}")
    click.echo(f"Duration : {score.duration_seconds:.1f} s")
    click.echo(f"Parts    : {len(score.parts)}")
    for part in score.parts:
        role = "vocal" if part.is_vocal else "accompaniment"
        click.echo(
            f"  - {part.name:<12} {part.part_type.display_name:<13} {role:<13} "
            f"ch {part.midi_channel:>2}  prog {part.midi_program:>3}  "
            f"{len(part.notes)} notes"
        )


# ── schedule subcommand ────────────────────────────────────────────────────────

@main.command()
@click.argument("score_file", type=click.Path(dir_okay=False))
@click.option(
    "--tempo",
    type=click.IntRange(20, 300),
    default=None,
    help="Playback tempo in BPM. Defaults to the score's tempo.",
)
@click.option(
    "--part",
    "part_name",
    default=None,
    metavar="NAME",
    help="Only list events of this part (name or type, e.g. 'tenor').",
)
def schedule(score_file: str, tempo: int | None, part_name: str | None) -> None:
    """
    Print the playback schedule of a score, one event per line.

    \b
    Examples:
      choirhelper schedule amazing_grace.musicxml
      choirhelper schedule amazing_grace.musicxml --part tenor --tempo 80
    """
    score = _load_score(score_file)
    midi_schedule = MidiScheduler(tempo=tempo).schedule(score)

    events = midi_schedule.events
    if part_name is not None:
        part = _select_part(score, part_name)
        events = tuple(midi_schedule.events_for_part(score.parts.index(part)))

    click.echo(
        f"{len(events)} event(s), {midi_schedule.total_beats:g} beats, "
        f"{midi_schedule.total_seconds:.1f} s at {midi_schedule.tempo} BPM"
    )
    for event in events:
        part = score.parts[event.part_index]
        click.echo(
            f"  {event.start_beat:8.2f}  {part.name:<12} m{event.measure_number:<3} "
            f"note {event.midi_note:>3}  vel {event.velocity:>3}  dur {event.duration_beats:.2f}"
        )


# ── layout subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("score_file", type=click.Path(dir_okay=False))
@click.option(
    "--part",
    "part_name",
    default=None,
    metavar="NAME",
    help="Part to lay out (name or type). Defaults to the singer's own part.",
)
@click.option(
    "--width",
    type=click.FloatRange(min=1.0),
    default=DEFAULT_WIDTH,
    show_default=True,
    help="Available line width in points.",
)
@click.option(
    "--spacing",
    type=click.FloatRange(min=1.0),
    default=8.0,
    show_default=True,
    help="Distance between staff lines in points.",
)
def layout(score_file: str, part_name: str | None, width: float, spacing: float) -> None:
    """
    Lay out one part on justified staff lines and print the line breaks.

    \b
    Examples:
      choirhelper layout amazing_grace.musicxml --part tenor --width 400
    """
    score = _load_score(score_file)
    if not score.parts:
        click.echo("  ERROR: Score has no parts.", err=True)
        sys.exit(1)
    part = _select_part(score, part_name)

    geometry = StaffGeometry.for_part(part, staff_spacing=spacing)
    notation = NotationLayoutEngine(geometry, width).layout(part)

    click.echo(
        f"{part.name} ({geometry.clef_type.value} clef): "
        f"{notation.measure_count} measure(s) on {len(notation.lines)} line(s)"
    )
    for index, line in enumerate(notation.lines):
        numbers = [measure.number for measure in line.measures]
        click.echo(
            f"  line {index + 1:>2}: measures {numbers[0]}-{numbers[-1]}  "
            f"beats {line.start_beat:g}-{line.end_beat:g}"
        )


# ── midi subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("score_file", type=click.Path(dir_okay=False))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination MIDI file path. Defaults to <score-title>.mid.",
)
@click.option(
    "--tempo",
    type=click.IntRange(20, 300),
    default=None,
    help="Playback tempo in BPM. Defaults to the score's tempo.",
)
def midi(score_file: str, output: str | None, tempo: int | None) -> None:
    """
    Export a MusicXML score as a multi-track MIDI file, one track per part.

    \b
    Examples:
      choirhelper midi amazing_grace.musicxml
      choirhelper midi amazing_grace.musicxml -o practice.mid --tempo 72
    """
    click.echo("[1/3] Parsing MusicXML...")
    score = _load_score(score_file)
    resolved_output = output if output is not None else _title_to_filename(score.title)
    click.echo(f"      {score.title}: {len(score.parts)} part(s), {score.measure_count} measure(s)")

    click.echo("[2/3] Scheduling notes...")
    midi_schedule = MidiScheduler(tempo=tempo).schedule(score)
    click.echo(f"      {len(midi_schedule.events)} event(s) at {midi_schedule.tempo} BPM")

    click.echo(f"[3/3] Writing MIDI file → '{resolved_output}'...")
    try:
        MidiExporter().export(score, midi_schedule, resolved_output)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write MIDI file: {exc}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"Done!  Open '{resolved_output}' in MuseScore, GarageBand, or any MIDI player.")


# ── library subcommands ────────────────────────────────────────────────────────

@main.command(name="import")
@click.argument("score_file", type=click.Path(dir_okay=False))
@click.option(
    "--store",
    default=DEFAULT_STORE,
    show_default=True,
    metavar="DIR",
    help="Directory holding saved scores.",
)
def import_score(score_file: str, store: str) -> None:
    """Parse a MusicXML file and save it to the score library."""
    score = _load_score(score_file)
    storage = ScoreStorage(Path(store).expanduser())
    try:
        path = storage.save(score)
    except ChoirHelperError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(1)
    click.echo(f"Saved '{score.title}' as {score.id}")
    click.echo(f"      {path}")


@main.command(name="list")
@click.option(
    "--store",
    default=DEFAULT_STORE,
    show_default=True,
    metavar="DIR",
    help="Directory holding saved scores.",
)
def list_scores(store: str) -> None:
    """List the scores in the library."""
    scores = ScoreStorage(Path(store).expanduser()).load_all()
    if not scores:
        click.echo("No saved scores.")
        return
    for score in scores:
        click.echo(f"{score.id}  {score.title}  ({len(score.parts)} parts)")
