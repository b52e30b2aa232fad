"""Unit tests for NotationLayoutEngine and NotationLayout lookups."""

from pathlib import Path

import pytest

from choirhelper.layout_engine import NotationLayoutEngine, layout
from choirhelper.models import ClefType, Lyric, Measure, Note, NoteType, Part, PartType, Pitch, Step
from choirhelper.musicxml import parse_file
from choirhelper.staff_geometry import StaffGeometry

FIXTURE = Path(__file__).parent / "data" / "amazing_grace.musicxml"

TREBLE = StaffGeometry(clef_type=ClefType.TREBLE)


def _quarters(number: int, *steps: Step) -> Measure:
    return Measure(number=number, notes=tuple(Note.single(Pitch(step, 4), 1.0) for step in steps))


def _sample_part(measure_count: int = 5) -> Part:
    return Part(
        name="Soprano",
        part_type=PartType.SOPRANO,
        measures=tuple(_quarters(n + 1, Step.C, Step.D, Step.E, Step.F) for n in range(measure_count)),
    )


# ── Minimum widths ────────────────────────────────────────────────────────────

def test_minimum_width_of_quarter_measure() -> None:
    assert NotationLayoutEngine.minimum_width(_quarters(1, Step.C, Step.D, Step.E, Step.F)) == 176.0


def test_short_notes_use_minimum_spacing() -> None:
    measure = Measure(
        number=1,
        notes=(
            Note.single(Pitch(Step.C, 4), 0.5, note_type=NoteType.EIGHTH),
            Note.single(Pitch(Step.D, 4), 0.25, note_type=NoteType.SIXTEENTH),
        ),
    )
    assert NotationLayoutEngine.minimum_width(measure) == 16.0 + 20.0 + 20.0


def test_empty_measure_gets_one_slot() -> None:
    assert NotationLayoutEngine.minimum_width(Measure(number=1)) == 36.0


# ── Line breaking ─────────────────────────────────────────────────────────────

def test_line_breaks() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(5))
    assert [len(line.measures) for line in result.lines] == [1, 2, 2]
    assert result.measure_count == 5
    assert result.lines[0].leading_width == 76.0
    assert result.lines[1].leading_width == 32.0


def test_every_measure_laid_out_once_in_order() -> None:
    result = layout(_sample_part(9), TREBLE, 520.0)
    numbers = [m.number for line in result.lines for m in line.measures]
    assert numbers == list(range(1, 10))


def test_narrow_width_still_places_one_measure_per_line() -> None:
    result = NotationLayoutEngine(TREBLE, 10.0).layout(_sample_part(3))
    assert [len(line.measures) for line in result.lines] == [1, 1, 1]
    # Overfull lines keep the minimum width.
    assert result.lines[0].measures[0].width == 176.0


def test_beats_are_continuous_across_lines() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(5))
    assert [(line.start_beat, line.end_beat) for line in result.lines] == [
        (0.0, 4.0),
        (4.0, 12.0),
        (12.0, 20.0),
    ]
    for line in result.lines:
        for previous, current in zip(line.measures, line.measures[1:]):
            assert current.start_beat == previous.end_beat
            assert current.x == pytest.approx(previous.right)


def test_empty_part_has_no_lines() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(Part(name="Empty", part_type=PartType.ALTO))
    assert result.lines == ()
    assert result.measure_count == 0
    assert result.line_index_for_beat(0.0) is None
    assert result.x_position_for_beat(0.0) is None
    assert result.beat_position_for_x(100.0) is None


# ── Justification ─────────────────────────────────────────────────────────────

def test_lines_fill_available_width() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(5))
    for line in result.lines:
        assert line.measures[-1].right == pytest.approx(400.0)


def test_extra_space_follows_measure_duration() -> None:
    part = Part(
        name="Soprano",
        part_type=PartType.SOPRANO,
        measures=(_quarters(1, Step.C, Step.D, Step.E, Step.F), _quarters(2, Step.G, Step.A)),
    )
    first, second = NotationLayoutEngine(TREBLE, 1000.0).layout(part).lines[0].measures
    assert first.width - 176.0 == pytest.approx(2 * (second.width - 96.0))


def test_notes_sit_at_slot_centres() -> None:
    measure = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(1)).lines[0].measures[0]
    assert measure.x == 76.0
    assert measure.width == pytest.approx(324.0)
    assert [note.x for note in measure.notes] == pytest.approx([122.5, 199.5, 276.5, 353.5])
    assert [note.beat_position for note in measure.notes] == [0.0, 1.0, 2.0, 3.0]


# ── Vertical placement ────────────────────────────────────────────────────────

def test_note_positions_and_ledger_lines() -> None:
    note = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(1)).lines[0].measures[0].notes[0]
    assert note.y == 40.0
    assert note.diatonic_positions == (28,)
    assert note.ledger_line_ys == (40.0,)
    assert note.stem_up
    assert not note.is_rest


def test_rest_sits_at_staff_centre() -> None:
    part = Part(
        name="Alto",
        part_type=PartType.ALTO,
        measures=(Measure(number=1, notes=(Note(is_rest=True, duration=4.0, note_type=NoteType.WHOLE),)),),
    )
    note = NotationLayoutEngine(TREBLE, 400.0).layout(part).lines[0].measures[0].notes[0]
    assert note.is_rest
    assert note.y == TREBLE.staff_height / 2
    assert note.ys == ()
    assert note.ledger_line_ys == ()


def test_chord_keeps_every_pitch() -> None:
    chord = Note(
        pitches=(Pitch(Step.C, 4), Pitch(Step.E, 4), Pitch(Step.G, 4, alter=1)),
        duration=4.0,
        note_type=NoteType.WHOLE,
    )
    part = Part(name="Piano", part_type=PartType.PIANO, measures=(Measure(number=1, notes=(chord,)),))
    note = NotationLayoutEngine(TREBLE, 400.0).layout(part).lines[0].measures[0].notes[0]
    assert note.is_chord
    assert note.ys == (40.0, 32.0, 24.0)
    assert note.accidentals == (0, 0, 1)
    assert note.accidental == 0
    assert note.stem_up


def test_lyrics_are_carried() -> None:
    sung = Note.single(Pitch(Step.G, 4), 2.0, note_type=NoteType.HALF, lyric=Lyric("Glo"))
    silent = Note.single(Pitch(Step.A, 4), 2.0, note_type=NoteType.HALF)
    part = Part(name="Soprano", part_type=PartType.SOPRANO, measures=(Measure(number=1, notes=(sung, silent)),))
    notes = NotationLayoutEngine(TREBLE, 400.0).layout(part).lines[0].measures[0].notes
    assert [note.lyric_text for note in notes] == ["Glo", None]


def test_tenor_is_drawn_an_octave_up() -> None:
    tenor = Part(
        name="Tenor",
        part_type=PartType.TENOR,
        measures=(Measure(number=1, notes=(Note.single(Pitch(Step.C, 3), 4.0, note_type=NoteType.WHOLE),)),),
    )
    geometry = StaffGeometry.for_part(tenor)
    note = layout(tenor, geometry, 400.0).lines[0].measures[0].notes[0]
    assert note.y == TREBLE.y_position(Pitch(Step.C, 4))


# ── Beat / x lookups ──────────────────────────────────────────────────────────

def test_line_index_for_beat() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(5))
    assert result.line_index_for_beat(0.0) == 0
    assert result.line_index_for_beat(4.0) == 1
    assert result.line_index_for_beat(19.5) == 2
    assert result.line_index_for_beat(25.0) == 2
    assert result.line_index_for_beat(-1.0) is None


def test_x_position_for_beat_interpolates() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(1))
    assert result.x_position_for_beat(1.0) == pytest.approx(199.5)
    assert result.x_position_for_beat(0.5) == pytest.approx(161.0)
    assert result.x_position_for_beat(0.0, line_index=7) is None


def test_beat_position_for_x_interpolates() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(1))
    assert result.beat_position_for_x(161.0) == pytest.approx(0.5)
    assert result.beat_position_for_x(392.0) == pytest.approx(4.0)
    # Left of the first note clamps to the measure start.
    assert result.beat_position_for_x(80.0) == 0.0
    assert result.beat_position_for_x(100.0, line_index=3) is None


def test_beat_position_for_x_recovers_note_onsets() -> None:
    result = NotationLayoutEngine(TREBLE, 400.0).layout(_sample_part(5))
    for index, line in enumerate(result.lines):
        for measure in line.measures:
            for note in measure.notes:
                assert result.beat_position_for_x(note.x, index) == pytest.approx(note.beat_position)


# ── Full score ────────────────────────────────────────────────────────────────

@pytest.mark.integration
def test_amazing_grace_tenor_layout() -> None:
    score = parse_file(FIXTURE)
    tenor = score.user_parts[0]
    result = layout(tenor, StaffGeometry.for_part(tenor), 600.0)

    assert result.measure_count == 16
    assert result.lines[0].start_beat == 0.0
    assert result.lines[-1].end_beat == pytest.approx(46.0)
    for previous, current in zip(result.lines, result.lines[1:]):
        assert current.start_beat == pytest.approx(previous.end_beat)
