"""Data models for notation layout outputs."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from choirhelper.models import NoteType
from choirhelper.staff_geometry import StaffGeometry


@dataclass(frozen=True)
class LayoutNote:
    """
    A positioned note, chord or rest.

    ``ys``, ``diatonic_positions`` and ``accidentals`` hold one entry per
    pitch, in the note's pitch order; all three are empty for rests.
    """

    x: float
    ys: tuple[float, ...]
    diatonic_positions: tuple[int, ...]
    note_type: NoteType
    is_rest: bool
    stem_up: bool
    accidentals: tuple[int, ...]
    lyric_text: str | None
    ledger_line_ys: tuple[float, ...]
    beat_position: float
    duration: float
    rest_y: float = 0.0

    @property
    def y(self) -> float:
        """Y of the first notehead, or of the rest glyph."""
        return self.ys[0] if self.ys else self.rest_y

    @property
    def accidental(self) -> int:
        """Chromatic alteration of the first pitch (-1 flat, 0 none, 1 sharp)."""
        return self.accidentals[0] if self.accidentals else 0

    @property
    def is_chord(self) -> bool:
        return len(self.ys) > 1


@dataclass(frozen=True)
class LayoutMeasure:
    """A measure placed on a line; ``x`` is its leading barline."""

    x: float
    width: float
    number: int
    notes: tuple[LayoutNote, ...]
    start_beat: float
    duration: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def end_beat(self) -> float:
        return self.start_beat + self.duration

    def anchors(self) -> tuple[list[float], list[float]]:
        """
        Matching x and beat anchor points for interpolation inside the measure.

        Each notehead anchors its own onset; the measure's right padding edge
        anchors its end beat.
        """
        xs = [note.x for note in self.notes]
        beats = [note.beat_position for note in self.notes]
        if not xs:
            xs.append(self.x + StaffGeometry.MEASURE_PADDING)
            beats.append(self.start_beat)
        xs.append(max(self.right - StaffGeometry.MEASURE_PADDING, xs[-1]))
        beats.append(self.end_beat)
        return xs, beats


@dataclass(frozen=True)
class LayoutLine:
    """One system: consecutive measures drawn on the same staff."""

    measures: tuple[LayoutMeasure, ...]
    start_beat: float
    end_beat: float
    leading_width: float = 0.0

    def measure_at_x(self, x: float) -> LayoutMeasure:
        """The measure containing ``x``, clamped to the first or last measure."""
        for measure in self.measures:
            if x < measure.right:
                return measure
        return self.measures[-1]

    def measure_at_beat(self, beat: float) -> LayoutMeasure:
        for measure in self.measures:
            if beat < measure.end_beat:
                return measure
        return self.measures[-1]


@dataclass(frozen=True)
class NotationLayout:
    """Complete layout of one part for a given width."""

    lines: tuple[LayoutLine, ...]
    staff_geometry: StaffGeometry
    available_width: float = 0.0

    @property
    def measure_count(self) -> int:
        return sum(len(line.measures) for line in self.lines)

    def line_index_for_beat(self, beat: float) -> int | None:
        """
        Index of the line containing ``beat``.

        Beats past the end map to the last line; beats before the start (or
        any beat in an empty layout) give None.
        """
        for index, line in enumerate(self.lines):
            if line.start_beat <= beat < line.end_beat:
                return index
        if self.lines and beat >= self.lines[-1].end_beat:
            return len(self.lines) - 1
        return None

    def x_position_for_beat(self, beat: float, line_index: int | None = None) -> float | None:
        """
        X of a playback cursor at ``beat``, interpolated between noteheads.

        Uses the line containing ``beat`` unless ``line_index`` is given.
        """
        if line_index is None:
            line_index = self.line_index_for_beat(beat)
        if line_index is None or not 0 <= line_index < len(self.lines):
            return None
        if not self.lines[line_index].measures:
            return None
        measure = self.lines[line_index].measure_at_beat(beat)
        xs, beats = measure.anchors()
        return float(np.interp(beat, beats, xs))

    def beat_position_for_x(self, x: float, line_index: int = 0) -> float | None:
        """
        Beat under horizontal position ``x`` on line ``line_index``.

        Finds the containing measure, then interpolates linearly between the
        onsets of the surrounding notes. Positions left of the first note or
        right of the last measure clamp to the line's start or end.
        """
        if not 0 <= line_index < len(self.lines) or not self.lines[line_index].measures:
            return None
        measure = self.lines[line_index].measure_at_x(x)
        xs, beats = measure.anchors()
        return float(np.interp(x, xs, beats))
