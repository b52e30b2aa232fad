"""Unit tests for StaffGeometry."""

from choirhelper.models import ClefType, Part, PartType, Pitch, Step
from choirhelper.staff_geometry import StaffGeometry

TREBLE = StaffGeometry(clef_type=ClefType.TREBLE)
BASS = StaffGeometry(clef_type=ClefType.BASS)


def test_staff_height_is_four_spaces() -> None:
    assert TREBLE.staff_height == 32.0
    assert StaffGeometry(staff_spacing=10.0).staff_height == 40.0


def test_line_indices() -> None:
    assert (TREBLE.top_line_index, TREBLE.middle_line_index, TREBLE.bottom_line_index) == (38, 34, 30)
    assert (BASS.top_line_index, BASS.middle_line_index, BASS.bottom_line_index) == (26, 22, 18)
    assert TREBLE.line_y(4) == 32.0


def test_treble_outer_lines() -> None:
    assert TREBLE.y_position(Pitch(Step.F, 5)) == 0.0
    assert TREBLE.y_position(Pitch(Step.E, 4)) == 32.0
    assert TREBLE.y_position(Pitch(Step.B, 4)) == 16.0


def test_bass_outer_lines() -> None:
    assert BASS.y_position(Pitch(Step.A, 3)) == 0.0
    assert BASS.y_position(Pitch(Step.G, 2)) == 32.0


def test_accidental_does_not_move_notehead() -> None:
    assert TREBLE.y_position(Pitch(Step.F, 4, alter=1)) == TREBLE.y_position(Pitch(Step.F, 4))


def test_higher_pitch_has_smaller_y() -> None:
    assert TREBLE.y_position(Pitch(Step.D, 5)) < TREBLE.y_position(Pitch(Step.C, 5))


def test_tenor_c3_sits_where_treble_c4_does() -> None:
    tenor = StaffGeometry.for_part(Part(name="Tenor", part_type=PartType.TENOR))
    assert tenor.octave_transposition == 1
    assert tenor.y_position(Pitch(Step.C, 3)) == TREBLE.y_position(Pitch(Step.C, 4))


def test_for_part_picks_clef_and_spacing() -> None:
    bass = StaffGeometry.for_part(Part(name="Bass", part_type=PartType.BASS), staff_spacing=12.0)
    assert bass.clef_type is ClefType.BASS
    assert bass.octave_transposition == 0
    assert bass.staff_spacing == 12.0


# ── Ledger lines ──────────────────────────────────────────────────────────────

def test_no_ledger_lines_inside_staff() -> None:
    assert TREBLE.ledger_line_positions(Pitch(Step.D, 4)) == []
    assert TREBLE.ledger_line_positions(Pitch(Step.G, 5)) == []
    assert TREBLE.ledger_line_positions(Pitch(Step.B, 4)) == []


def test_middle_c_needs_one_ledger_line_in_treble() -> None:
    assert TREBLE.ledger_line_positions(Pitch(Step.C, 4)) == [40.0]


def test_low_a_needs_two_ledger_lines_in_treble() -> None:
    assert TREBLE.ledger_line_positions(Pitch(Step.A, 3)) == [40.0, 48.0]


def test_ledger_lines_above_staff() -> None:
    assert TREBLE.ledger_line_positions(Pitch(Step.A, 5)) == [-8.0]
    assert TREBLE.ledger_line_positions(Pitch(Step.C, 6)) == [-8.0, -16.0]


def test_middle_c_needs_one_ledger_line_in_bass() -> None:
    assert BASS.ledger_line_positions(Pitch(Step.C, 4)) == [-8.0]


def test_chord_ledger_lines_are_merged() -> None:
    chord = [Pitch(Step.A, 3), Pitch(Step.C, 4), Pitch(Step.E, 4)]
    assert TREBLE.chord_ledger_line_positions(chord) == [40.0, 48.0]


# ── Stems ─────────────────────────────────────────────────────────────────────

def test_stem_direction_single_notes() -> None:
    assert TREBLE.stem_up(Pitch(Step.A, 4))
    assert not TREBLE.stem_up(Pitch(Step.B, 4))
    assert not TREBLE.stem_up(Pitch(Step.E, 5))


def test_chord_stem_follows_farthest_note() -> None:
    assert TREBLE.chord_stem_up([Pitch(Step.C, 4), Pitch(Step.E, 4)])
    assert not TREBLE.chord_stem_up([Pitch(Step.F, 5), Pitch(Step.A, 5)])
    # G4 and D5 are equally far from B4: stem up.
    assert TREBLE.chord_stem_up([Pitch(Step.G, 4), Pitch(Step.D, 5)])


def test_empty_chord_has_stem_down() -> None:
    assert not TREBLE.chord_stem_up([])


# ── Key signatures ────────────────────────────────────────────────────────────

def test_b_flat_major_positions() -> None:
    assert TREBLE.key_signature_positions(-2) == [34, 37]


def test_sharp_positions() -> None:
    assert TREBLE.key_signature_positions(1) == [38]
    assert TREBLE.key_signature_positions(7) == [38, 35, 39, 36, 33, 37, 34]
    assert BASS.key_signature_positions(2) == [24, 21]


def test_c_major_has_no_accidentals() -> None:
    assert TREBLE.key_signature_positions(0) == []
    assert TREBLE.key_signature_y_positions(0) == []


def test_key_signature_y_positions() -> None:
    assert TREBLE.key_signature_y_positions(1) == [0.0]
    assert BASS.key_signature_y_positions(-1) == [24.0]
