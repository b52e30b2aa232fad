"""StaffGeometry: maps pitches to vertical staff positions for one clef."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Iterable

from choirhelper.models import STEPS_PER_OCTAVE, ClefType, Part, Pitch

# ── Key-signature tables ────────────────────────────────────────────────────
# Diatonic indices of the accidentals in engraving order (the traditional
# zigzag), not tied to the octave of any sounding pitch.

#: Treble clef sharps: F5 C5 G5 D5 A4 E5 B4
TREBLE_SHARP_POSITIONS: Final[tuple[int, ...]] = (38, 35, 39, 36, 33, 37, 34)
#: Treble clef flats: B4 E5 A4 D5 G4 C5 F4
TREBLE_FLAT_POSITIONS: Final[tuple[int, ...]] = (34, 37, 33, 36, 32, 35, 31)

# The bass clef pattern sits two octaves (14 steps) below the treble one.
_BASS_OFFSET = 2 * STEPS_PER_OCTAVE
BASS_SHARP_POSITIONS: Final[tuple[int, ...]] = tuple(p - _BASS_OFFSET for p in TREBLE_SHARP_POSITIONS)
BASS_FLAT_POSITIONS: Final[tuple[int, ...]] = tuple(p - _BASS_OFFSET for p in TREBLE_FLAT_POSITIONS)

#: Diatonic index of the top staff line: F5 in treble, A3 in bass.
TOP_LINE_INDEX: Final[dict[ClefType, int]] = {
    ClefType.TREBLE: 38,
    ClefType.BASS: 26,
}

# 5 lines span 8 diatonic steps.
_STAFF_SPAN = 8


@dataclass(frozen=True)
class StaffGeometry:
    """
    Staff dimensions and pitch-to-position mapping.

    Y coordinates are measured downwards from the top staff line, half a
    ``staff_spacing`` per diatonic step.

    Attributes:
        staff_spacing:        Distance between adjacent staff lines in points.
        clef_type:            Clef that decides which pitch sits on which line.
        octave_transposition: Octaves added before placement, so a tenor part
                              written in treble clef appears an octave above
                              its sounding pitch.
    """

    staff_spacing: float = 8.0
    clef_type: ClefType = ClefType.TREBLE
    octave_transposition: int = 0

    # Horizontal spacing constants (points)
    MIN_NOTE_SPACING = 20.0
    BASE_NOTE_WIDTH = 40.0
    CLEF_WIDTH = 32.0
    KEY_SIGNATURE_WIDTH = 24.0
    TIME_SIGNATURE_WIDTH = 20.0
    MEASURE_PADDING = 8.0

    @classmethod
    def for_part(cls, part: Part, staff_spacing: float = 8.0) -> StaffGeometry:
        """Geometry with the clef and display transposition of ``part``'s type."""
        return cls(
            staff_spacing=staff_spacing,
            clef_type=part.part_type.clef_type,
            octave_transposition=part.part_type.octave_transposition,
        )

    # ------------------------------------------------------------------
    # Staff lines
    # ------------------------------------------------------------------

    @property
    def staff_height(self) -> float:
        """Height of the five-line staff (four spaces)."""
        return self.staff_spacing * 4.0

    @property
    def top_line_index(self) -> int:
        return TOP_LINE_INDEX[self.clef_type]

    @property
    def bottom_line_index(self) -> int:
        return self.top_line_index - _STAFF_SPAN

    @property
    def middle_line_index(self) -> int:
        return self.top_line_index - _STAFF_SPAN // 2

    def line_y(self, line_index: int) -> float:
        """Y of a staff line, 0 = top line, 4 = bottom line."""
        return line_index * self.staff_spacing

    # ------------------------------------------------------------------
    # Vertical placement
    # ------------------------------------------------------------------

    def display_diatonic_index(self, pitch: Pitch) -> int:
        return pitch.diatonic_index + self.octave_transposition * STEPS_PER_OCTAVE

    def y_for_diatonic_index(self, index: int) -> float:
        return (self.top_line_index - index) * self.staff_spacing / 2.0

    def y_position(self, pitch: Pitch) -> float:
        return self.y_for_diatonic_index(self.display_diatonic_index(pitch))

    def ledger_line_positions(self, pitch: Pitch) -> list[float]:
        """
        Y positions of the ledger lines ``pitch`` needs.

        One line every second step beyond the nearest staff boundary, so
        middle C in treble clef gets one and A3 gets two.
        """
        index = self.display_diatonic_index(pitch)
        if index > self.top_line_index:
            count = (index - self.top_line_index) // 2
            return [self.y_for_diatonic_index(self.top_line_index + 2 * i) for i in range(1, count + 1)]
        if index < self.bottom_line_index:
            count = (self.bottom_line_index - index) // 2
            return [
                self.y_for_diatonic_index(self.bottom_line_index - 2 * i) for i in range(1, count + 1)
            ]
        return []

    def chord_ledger_line_positions(self, pitches: Iterable[Pitch]) -> list[float]:
        """Union of the ledger lines of all ``pitches``, deduplicated and sorted."""
        positions: set[float] = set()
        for pitch in pitches:
            positions.update(self.ledger_line_positions(pitch))
        return sorted(positions)

    # ------------------------------------------------------------------
    # Stems
    # ------------------------------------------------------------------

    def stem_up(self, pitch: Pitch) -> bool:
        """Stems go up below the middle line and down on or above it."""
        return self.display_diatonic_index(pitch) < self.middle_line_index

    def chord_stem_up(self, pitches: Iterable[Pitch]) -> bool:
        """
        Stem direction for a chord.

        The outer note farther from the middle line decides; equal distances
        give an upward stem.
        """
        indices = [self.display_diatonic_index(pitch) for pitch in pitches]
        if not indices:
            return False
        top_distance = abs(max(indices) - self.middle_line_index)
        bottom_distance = abs(min(indices) - self.middle_line_index)
        return bottom_distance >= top_distance

    # ------------------------------------------------------------------
    # Key signatures
    # ------------------------------------------------------------------

    def key_signature_positions(self, fifths: int) -> list[int]:
        """Diatonic indices of the key-signature accidentals, in drawing order."""
        if fifths == 0:
            return []
        if self.clef_type is ClefType.TREBLE:
            table = TREBLE_SHARP_POSITIONS if fifths > 0 else TREBLE_FLAT_POSITIONS
        else:
            table = BASS_SHARP_POSITIONS if fifths > 0 else BASS_FLAT_POSITIONS
        return list(table[: abs(fifths)])

    def key_signature_y_positions(self, fifths: int) -> list[float]:
        return [self.y_for_diatonic_index(index) for index in self.key_signature_positions(fifths)]
