"""MidiExporter: writes a MidiSchedule to a multi-track Standard MIDI File."""

from __future__ import annotations

import io
import logging
import math
from typing import BinaryIO

from midiutil import MIDIFile

from choirhelper.models import Score
from choirhelper.scheduler import MidiSchedule

logger = logging.getLogger(__name__)

# In midiutil Format 1 MIDI the conductor/tempo track is created by midiutil
# itself: tempo and time signature events always land there, and user track N
# is written as file track N + 1.
TRACK_CONDUCTOR = 0

# MIDI clocks per metronome click in the time signature meta event.
_CLOCKS_PER_CLICK = 24


class MidiExporter:
    """
    Writes a schedule to a Standard MIDI File (format 1).

    Track layout
    ------------
    File track 0: conductor track with the score tempo and time signature.

    File track N + 1: part N of the score, named after the part, with a
    program change to the part's General MIDI program on the part's channel.
    Every MidiEvent of that part becomes one note.

    Keeping one part per track lets a singer mute or solo their own line in
    any MIDI player.

    Timing
    ------
    Schedule beats are quarter notes, which is midiutil's time unit, so
    events are written unchanged.
    """

    DEFAULT_TICKS_PER_QUARTER = 480

    def __init__(self, ticks_per_quarter: int = DEFAULT_TICKS_PER_QUARTER) -> None:
        """
        Args:
            ticks_per_quarter: File resolution in ticks per quarter note.
        """
        self.ticks_per_quarter = ticks_per_quarter

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build(self, score: Score, schedule: MidiSchedule) -> MIDIFile:
        part_count = len(score.parts)
        midi = MIDIFile(
            numTracks=max(part_count, 1),
            removeDuplicates=False,
            deinterleave=False,
            ticks_per_quarternote=self.ticks_per_quarter,
        )

        # --- Conductor: tempo + meter, no notes ---
        midi.addTempo(TRACK_CONDUCTOR, 0, schedule.tempo)
        beat_type = score.time_signature.beat_type
        if beat_type > 0 and beat_type & (beat_type - 1) == 0:
            midi.addTimeSignature(
                TRACK_CONDUCTOR,
                0,
                score.time_signature.beats,
                int(math.log2(beat_type)),
                _CLOCKS_PER_CLICK,
            )

        # --- One track per part ---
        for track, part in enumerate(score.parts):
            midi.addTrackName(track, 0, part.name)
            midi.addProgramChange(track, part.midi_channel, 0, part.midi_program)

        for event in schedule.events:
            if not 0 <= event.part_index < part_count:
                logger.debug("Dropping event for unknown part %d", event.part_index)
                continue
            part = score.parts[event.part_index]
            midi.addNote(
                track=event.part_index,
                channel=part.midi_channel,
                pitch=event.midi_note,
                time=event.start_beat,
                duration=event.duration_beats,
                volume=event.velocity,
            )

        return midi

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def write(self, score: Score, schedule: MidiSchedule, stream: BinaryIO) -> None:
        """Write the MIDI file for ``schedule`` to an open binary stream."""
        self._build(score, schedule).writeFile(stream)

    def to_bytes(self, score: Score, schedule: MidiSchedule) -> bytes:
        """Return the complete MIDI file as bytes."""
        buffer = io.BytesIO()
        self.write(score, schedule, buffer)
        return buffer.getvalue()

    def export(self, score: Score, schedule: MidiSchedule, output_path: str) -> None:
        """
        Render ``schedule`` to a Standard MIDI File on disk.

        Args:
            score:       Score the schedule was built from (part names, programs).
            schedule:    Events to write.
            output_path: Destination file path (e.g. "output.mid").

        Raises:
            OSError: If the output file cannot be opened for writing.
        """
        with open(output_path, "wb") as f:
            self.write(score, schedule, f)
        logger.debug("Wrote %d events to %s", len(schedule.events), output_path)
