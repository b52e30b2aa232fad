"""NotationLayoutEngine: positions a part's measures and notes on justified lines."""

from __future__ import annotations

import logging

import numpy as np

from choirhelper.layout_models import LayoutLine, LayoutMeasure, LayoutNote, NotationLayout
from choirhelper.models import Measure, Note, Part
from choirhelper.staff_geometry import StaffGeometry

logger = logging.getLogger(__name__)


class NotationLayoutEngine:
    """
    Lays out one part for a given available width.

    Algorithm overview
    ------------------
    1. **Minimum widths** – every measure needs its padding plus, per note,
       the larger of ``MIN_NOTE_SPACING`` and the note type's relative
       duration times ``BASE_NOTE_WIDTH``. An empty measure still gets one
       note slot.

    2. **Line breaking** – measures are packed greedily while the running
       total (plus clef, key and time signature on the first line, clef only
       afterwards) fits. A line always takes at least one measure, however
       narrow the width.

    3. **Justification** – leftover width on a line is shared between its
       measures in proportion to their durations, and inside a measure
       between its notes in proportion to theirs.

    4. **Vertical placement** – pitches, ledger lines and stems come from
       ``StaffGeometry``; rests sit in the middle of the staff.
    """

    def __init__(self, staff_geometry: StaffGeometry, available_width: float) -> None:
        """
        Args:
            staff_geometry:  Clef, spacing and display transposition to use.
            available_width: Width of one line in points.
        """
        self.staff_geometry = staff_geometry
        self.available_width = available_width

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _leading_width(self, is_first_line: bool) -> float:
        if is_first_line:
            return (
                StaffGeometry.CLEF_WIDTH
                + StaffGeometry.KEY_SIGNATURE_WIDTH
                + StaffGeometry.TIME_SIGNATURE_WIDTH
            )
        return StaffGeometry.CLEF_WIDTH

    @staticmethod
    def minimum_width(measure: Measure) -> float:
        """Narrowest width ``measure`` can be drawn at."""
        width = StaffGeometry.MEASURE_PADDING * 2
        if not measure.notes:
            return width + StaffGeometry.MIN_NOTE_SPACING
        for note in measure.notes:
            width += max(
                StaffGeometry.MIN_NOTE_SPACING,
                note.note_type.relative_duration * StaffGeometry.BASE_NOTE_WIDTH,
            )
        return width

    def _break_lines(self, measures: tuple[Measure, ...], widths: list[float]) -> list[LayoutLine]:
        lines: list[LayoutLine] = []
        line_start = 0
        cumulative_beat = 0.0

        while line_start < len(measures):
            leading_width = self._leading_width(is_first_line=not lines)
            used_width = leading_width
            line_end = line_start

            while line_end < len(measures):
                if used_width + widths[line_end] > self.available_width and line_end > line_start:
                    break
                used_width += widths[line_end]
                line_end += 1

            line = self._layout_line(
                measures[line_start:line_end],
                widths[line_start:line_end],
                leading_width,
                cumulative_beat,
            )
            logger.debug(
                "Line %d: measures %d-%d, beats %.2f-%.2f",
                len(lines),
                line_start,
                line_end - 1,
                line.start_beat,
                line.end_beat,
            )
            lines.append(line)
            cumulative_beat = line.end_beat
            line_start = line_end

        return lines

    def _layout_line(
        self,
        measures: tuple[Measure, ...],
        minimum_widths: list[float],
        leading_width: float,
        start_beat: float,
    ) -> LayoutLine:
        min_widths = np.asarray(minimum_widths, dtype=float)
        durations = np.array([measure.total_duration for measure in measures], dtype=float)
        extra_space = max(0.0, self.available_width - leading_width - float(min_widths.sum()))

        total_duration = float(durations.sum())
        if total_duration > 0:
            shares = durations / total_duration
        else:
            shares = np.full(len(measures), 1.0 / len(measures))
        measure_widths = min_widths + extra_space * shares

        layout_measures: list[LayoutMeasure] = []
        x = leading_width
        beat = start_beat
        for measure, width in zip(measures, measure_widths):
            width = float(width)
            layout_measures.append(
                LayoutMeasure(
                    x=x,
                    width=width,
                    number=measure.number,
                    notes=tuple(self._layout_notes(measure, x, width, beat)),
                    start_beat=beat,
                    duration=measure.total_duration,
                )
            )
            x += width
            beat += measure.total_duration

        return LayoutLine(
            measures=tuple(layout_measures),
            start_beat=start_beat,
            end_beat=beat,
            leading_width=leading_width,
        )

    def _layout_notes(
        self, measure: Measure, measure_x: float, measure_width: float, start_beat: float
    ) -> list[LayoutNote]:
        if not measure.notes:
            return []

        content_width = measure_width - StaffGeometry.MEASURE_PADDING * 2
        content_start = measure_x + StaffGeometry.MEASURE_PADDING
        durations = np.array([note.duration for note in measure.notes], dtype=float)
        total_duration = float(durations.sum())

        if total_duration > 0:
            slot_widths = content_width * durations / total_duration
        else:
            slot_widths = np.full(len(measure.notes), content_width / len(measure.notes))
        slot_starts = content_start + np.concatenate(([0.0], np.cumsum(slot_widths)[:-1]))
        onsets = start_beat + np.concatenate(([0.0], np.cumsum(durations)[:-1]))

        return [
            self._layout_note(note, x=float(slot_x + slot_w / 2), beat_position=float(onset))
            for note, slot_x, slot_w, onset in zip(measure.notes, slot_starts, slot_widths, onsets)
        ]

    def _layout_note(self, note: Note, x: float, beat_position: float) -> LayoutNote:
        geometry = self.staff_geometry
        lyric_text = note.lyric.text if note.lyric is not None else None

        if note.is_rest or not note.pitches:
            return LayoutNote(
                x=x,
                ys=(),
                diatonic_positions=(),
                note_type=note.note_type,
                is_rest=True,
                stem_up=False,
                accidentals=(),
                lyric_text=lyric_text,
                ledger_line_ys=(),
                beat_position=beat_position,
                duration=note.duration,
                rest_y=geometry.staff_height / 2,
            )

        if note.is_chord:
            stem_up = geometry.chord_stem_up(note.pitches)
        else:
            stem_up = geometry.stem_up(note.pitches[0])

        return LayoutNote(
            x=x,
            ys=tuple(geometry.y_position(pitch) for pitch in note.pitches),
            diatonic_positions=tuple(geometry.display_diatonic_index(p) for p in note.pitches),
            note_type=note.note_type,
            is_rest=False,
            stem_up=stem_up,
            accidentals=tuple(pitch.alter for pitch in note.pitches),
            lyric_text=lyric_text,
            ledger_line_ys=tuple(geometry.chord_ledger_line_positions(note.pitches)),
            beat_position=beat_position,
            duration=note.duration,
            rest_y=geometry.staff_height / 2,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def layout(self, part: Part) -> NotationLayout:
        """Lay out every measure of ``part``; an empty part gives no lines."""
        measures = part.measures
        if not measures:
            return NotationLayout(
                lines=(), staff_geometry=self.staff_geometry, available_width=self.available_width
            )

        widths = [self.minimum_width(measure) for measure in measures]
        lines = self._break_lines(measures, widths)
        return NotationLayout(
            lines=tuple(lines),
            staff_geometry=self.staff_geometry,
            available_width=self.available_width,
        )


def layout(part: Part, staff_geometry: StaffGeometry, available_width: float) -> NotationLayout:
    """Lay out ``part`` with ``staff_geometry`` on lines ``available_width`` wide."""
    return NotationLayoutEngine(staff_geometry, available_width).layout(part)
