"""MidiScheduler: turns a Score into a flat, beat-ordered list of note events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Final

import numpy as np

from choirhelper.models import Dynamic, Note, Score

logger = logging.getLogger(__name__)

MIDI_NOTE_MIN = 0
MIDI_NOTE_MAX = 127

#: Note-on velocity per dynamic marking. Hairpins and unmarked notes get mf.
DYNAMIC_VELOCITIES: Final[dict[Dynamic, int]] = {
    Dynamic.PPP: 20,
    Dynamic.PP: 35,
    Dynamic.P: 50,
    Dynamic.MP: 65,
    Dynamic.MF: 80,
    Dynamic.F: 95,
    Dynamic.FF: 110,
    Dynamic.FFF: 127,
}
DEFAULT_VELOCITY = DYNAMIC_VELOCITIES[Dynamic.MF]


def velocity_for(dynamic: Dynamic | None) -> int:
    """Velocity for a note's own marking; hairpins and None map to mf."""
    return DYNAMIC_VELOCITIES.get(dynamic, DEFAULT_VELOCITY)


@dataclass(frozen=True)
class MidiEvent:
    """
    One sounding pitch.

    Attributes:
        part_index:     Index of the part in ``Score.parts``.
        midi_note:      MIDI note number, clamped to 0-127.
        velocity:       Note-on velocity (0-127).
        start_beat:     Onset in quarter-note beats from the start of the piece.
        duration_beats: Sounding length; may be shorter than the written length.
        measure_number: Number of the measure the note ends in.
        note_index:     Index of the source note in the part's flattened note list.
    """

    part_index: int
    midi_note: int
    velocity: int
    start_beat: float
    duration_beats: float
    measure_number: int
    note_index: int

    @property
    def end_beat(self) -> float:
        return self.start_beat + self.duration_beats


@dataclass(frozen=True)
class MidiSchedule:
    """
    Events for a whole score, sorted by ``start_beat``.

    The sorted start times make the lookups below binary searches, so a
    playback loop polling every few milliseconds stays cheap.
    """

    events: tuple[MidiEvent, ...]
    total_beats: float
    tempo: int

    @cached_property
    def start_beats(self) -> np.ndarray:
        return np.fromiter((e.start_beat for e in self.events), dtype=float, count=len(self.events))

    @property
    def total_seconds(self) -> float:
        return self.beats_to_seconds(self.total_beats)

    def beats_to_seconds(self, beats: float) -> float:
        return beats / self.tempo * 60.0

    def seconds_to_beats(self, seconds: float) -> float:
        return seconds * self.tempo / 60.0

    def event_index_for_beat(self, beat: float) -> int:
        """Index of the first event starting at or after ``beat`` (len(events) if none)."""
        return int(np.searchsorted(self.start_beats, beat, side="left"))

    def events_between(self, start_beat: float, end_beat: float) -> list[MidiEvent]:
        """Events whose onset lies in ``[start_beat, end_beat)``."""
        first = self.event_index_for_beat(start_beat)
        last = self.event_index_for_beat(end_beat)
        return list(self.events[first:last])

    def sounding_at(self, beat: float) -> list[MidiEvent]:
        """Events that have started and not yet ended at ``beat``."""
        upper = int(np.searchsorted(self.start_beats, beat, side="right"))
        return [event for event in self.events[:upper] if event.end_beat > beat]

    def events_for_part(self, part_index: int) -> list[MidiEvent]:
        return [event for event in self.events if event.part_index == part_index]


class MidiScheduler:
    """
    Converts a Score into a MidiSchedule.

    Algorithm (per part, notes in score order, beat cursor from 0)
    ---------------------------------------------------------------
    1. **Rests** advance the cursor and emit nothing.

    2. **Tie starts** emit nothing while the next note continues the tie
       (same MIDI pitch sequence, not a rest); their length is picked up by
       the note that ends the chain.

    3. **Chain ends** scan backwards over tied, same-pitch predecessors,
       adding their durations and moving the onset back to the first note of
       the chain. A tie start with no matching continuation (next note is a
       rest, a different pitch, or missing) ends its own chain and still
       sounds for its written length rather than being dropped.

    4. **Articulation gap** – when the next written note repeats the same
       pitches, the sounding length is shortened by ``ARTICULATION_GAP``
       beats (at most a quarter of the note) so the sampler re-attacks.

    5. **Velocity** comes from the terminating note's own dynamic marking
       (``DYNAMIC_VELOCITIES``); unmarked notes and hairpins play at mf.

    The cursor always advances by the written duration, so shortening never
    shifts later notes.
    """

    # 0.1 beat is roughly 60 ms at 100 BPM, enough for a sampler to re-trigger.
    ARTICULATION_GAP = 0.1
    MAX_GAP_FRACTION = 0.25

    def __init__(self, tempo: int | None = None) -> None:
        """
        Args:
            tempo: Playback tempo in BPM; defaults to the score's tempo.
        """
        self.tempo = tempo

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _continues_tie(note: Note, following: Note | None) -> bool:
        return (
            following is not None
            and not following.is_rest
            and following.midi_numbers == note.midi_numbers
        )

    def _articulation_gap(self, following: Note | None, note: Note, total_duration: float) -> float:
        if following is None or following.is_rest or following.midi_numbers != note.midi_numbers:
            return 0.0
        return min(self.ARTICULATION_GAP, total_duration * self.MAX_GAP_FRACTION)

    def _schedule_part(
        self,
        notes: list[tuple[Note, int]],
        part_index: int,
        events: list[MidiEvent],
    ) -> float:
        """Append the events of one part and return the part's final beat."""
        current_beat = 0.0

        for note_index, (note, measure_number) in enumerate(notes):
            if note.is_rest or not note.pitches:
                current_beat += note.duration
                continue

            following = notes[note_index + 1][0] if note_index + 1 < len(notes) else None
            if note.is_tied and self._continues_tie(note, following):
                current_beat += note.duration
                continue

            total_duration = note.duration
            start_beat = current_beat
            lookback = note_index - 1
            while lookback >= 0:
                previous = notes[lookback][0]
                if not previous.is_tied or previous.is_rest:
                    break
                if previous.midi_numbers != note.midi_numbers:
                    break
                total_duration += previous.duration
                start_beat -= previous.duration
                lookback -= 1

            sounding = total_duration - self._articulation_gap(following, note, total_duration)
            velocity = velocity_for(note.dynamic)

            for midi_number in note.midi_numbers:
                events.append(
                    MidiEvent(
                        part_index=part_index,
                        midi_note=min(MIDI_NOTE_MAX, max(MIDI_NOTE_MIN, midi_number)),
                        velocity=velocity,
                        start_beat=start_beat,
                        duration_beats=sounding,
                        measure_number=measure_number,
                        note_index=note_index,
                    )
                )

            current_beat += note.duration

        return current_beat

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def schedule(self, score: Score) -> MidiSchedule:
        """
        Build the event schedule for every part of ``score``.

        Parts of unequal length are not an error: ``total_beats`` is the
        length of the longest part.
        """
        events: list[MidiEvent] = []
        max_beat = 0.0

        for part_index, part in enumerate(score.parts):
            part_beats = self._schedule_part(part.notes, part_index, events)
            max_beat = max(max_beat, part_beats)

        # list.sort is stable, so simultaneous events keep part/pitch order.
        events.sort(key=lambda event: event.start_beat)
        tempo = self.tempo if self.tempo is not None else score.tempo
        logger.debug(
            "Scheduled %d events over %.2f beats at %d BPM", len(events), max_beat, tempo
        )
        return MidiSchedule(events=tuple(events), total_beats=max_beat, tempo=tempo)


def schedule(score: Score) -> MidiSchedule:
    """Schedule ``score`` at its own tempo."""
    return MidiScheduler().schedule(score)
