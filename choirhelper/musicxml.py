"""MusicXMLParser: streams a score-partwise document into a Score."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Final, Mapping

from lxml import etree

from choirhelper.errors import InvalidMusicXML, ParsingFailed, ScoreFileNotFound
from choirhelper.models import (
    Dynamic,
    KeySignature,
    Lyric,
    Measure,
    Mode,
    Note,
    NoteType,
    Part,
    PartType,
    Pitch,
    Score,
    Step,
    Syllabic,
    TimeSignature,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPO = 120
DEFAULT_TITLE = "Untitled"
MIDI_CHANNELS = 16

# Bytes handed to the incremental parser per feed() call when reading files.
_READ_CHUNK_SIZE = 64 * 1024


class MusicXMLElement(str, Enum):
    """Element names the parser reacts to; everything else is ignored."""

    SCORE_PARTWISE = "score-partwise"
    PART_LIST = "part-list"
    SCORE_PART = "score-part"
    PART_NAME = "part-name"
    PART = "part"
    MEASURE = "measure"
    ATTRIBUTES = "attributes"
    KEY = "key"
    FIFTHS = "fifths"
    MODE = "mode"
    TIME = "time"
    BEATS = "beats"
    BEAT_TYPE = "beat-type"
    DIVISIONS = "divisions"
    NOTE = "note"
    REST = "rest"
    CHORD = "chord"
    GRACE = "grace"
    PITCH = "pitch"
    STEP = "step"
    ALTER = "alter"
    OCTAVE = "octave"
    DURATION = "duration"
    TYPE = "type"
    TIE = "tie"
    TIED = "tied"
    LYRIC = "lyric"
    TEXT = "text"
    SYLLABIC = "syllabic"
    DYNAMICS = "dynamics"
    WEDGE = "wedge"
    DIRECTION = "direction"
    DIRECTION_TYPE = "direction-type"
    SOUND = "sound"
    WORK = "work"
    WORK_TITLE = "work-title"
    MOVEMENT_TITLE = "movement-title"
    IDENTIFICATION = "identification"
    CREATOR = "creator"

    @classmethod
    def lookup(cls, name: str) -> MusicXMLElement | None:
        return _ELEMENTS_BY_NAME.get(name)


_ELEMENTS_BY_NAME: Final[dict[str, MusicXMLElement]] = {e.value: e for e in MusicXMLElement}

_WEDGE_DYNAMICS: Final[dict[str, Dynamic]] = {
    "crescendo": Dynamic.CRESCENDO,
    "diminuendo": Dynamic.DECRESCENDO,
}

#: Part-name keywords, most specific first; the first entry with a keyword
#: contained in the lower-cased name wins. "ii" entries precede "i" entries
#: because "soprano i" is a substring of "soprano ii".
PART_TYPE_PATTERNS: Final[list[tuple[tuple[str, ...], PartType]]] = [
    (("soprano 2", "soprano ii"), PartType.SOPRANO2),
    (("soprano 1", "soprano i"), PartType.SOPRANO1),
    (("alto 2", "alto ii"), PartType.ALTO2),
    (("alto 1", "alto i"), PartType.ALTO1),
    (("tenor 2", "tenor ii"), PartType.TENOR2),
    (("tenor 1", "tenor i"), PartType.TENOR1),
    (("bass 2", "bass ii"), PartType.BASS2),
    (("bass 1", "bass i"), PartType.BASS1),
    (("soprano",), PartType.SOPRANO),
    (("alto",), PartType.ALTO),
    (("tenor",), PartType.TENOR),
    (("bass", "bariton"), PartType.BASS),
    (("descant",), PartType.DESCANT),
    (("piano", "accomp"), PartType.PIANO),
]


def infer_part_type(name: str) -> PartType:
    """Guess a part's role from its declared name; unmatched names are sopranos."""
    lower = name.lower()
    for keywords, part_type in PART_TYPE_PATTERNS:
        if any(keyword in lower for keyword in keywords):
            return part_type
    return PartType.SOPRANO


def _parse_int(text: str | None) -> int | None:
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        try:
            return int(float(text))
        except ValueError:
            return None


def _parse_float(text: str | None) -> float | None:
    if text is None:
        return None
    try:
        return float(text.strip())
    except ValueError:
        return None


# ── Builders ───────────────────────────────────────────────────────────────


@dataclass
class _PartListEntry:
    id: str
    name: str


@dataclass
class _NoteScratch:
    """Fields collected between a ``<note>`` open and close."""

    step: Step | None = None
    alter: int = 0
    octave: int = 4
    duration: float = 0.0
    note_type: NoteType | None = None
    is_rest: bool = False
    is_chord: bool = False
    is_grace: bool = False
    is_tied: bool = False
    lyric_text: str | None = None
    syllabic: Syllabic = Syllabic.SINGLE
    in_lyric: bool = False
    lyric_done: bool = False


@dataclass
class _MeasureBuilder:
    number: int
    notes: list[Note] = field(default_factory=list)
    key_signature: KeySignature | None = None
    time_signature: TimeSignature | None = None

    def merge_chord_pitch(self, pitch: Pitch | None) -> bool:
        """
        Append ``pitch`` to the previous note of this measure.

        Returns False when there is nothing to merge into (no previous note,
        or the previous note is a rest); the caller then keeps the note as a
        standalone note.
        """
        if pitch is None or not self.notes or self.notes[-1].is_rest:
            return False
        previous = self.notes[-1]
        self.notes[-1] = dataclasses.replace(previous, pitches=previous.pitches + (pitch,))
        return True

    def build(self) -> Measure:
        return Measure(
            number=self.number,
            notes=tuple(self.notes),
            time_signature=self.time_signature,
            key_signature=self.key_signature,
        )


# ── Event handler ──────────────────────────────────────────────────────────


class _MusicXMLHandler:
    """
    lxml parser target holding all state for a single parse.

    lxml calls ``start``/``data``/``end`` as the document streams in and
    ``close`` once it is complete. No element tree is built.
    """

    def __init__(self) -> None:
        # Score level
        self._work_title: str | None = None
        self._movement_title: str | None = None
        self._composer: str | None = None
        self._creator_type: str | None = None
        self._global_key: KeySignature | None = None
        self._global_time: TimeSignature | None = None
        self._tempo: int | None = None

        # Part list
        self._part_entries: list[_PartListEntry] = []
        self._score_part_id: str | None = None
        self._score_part_name: str | None = None
        self._in_part_list = False

        # Element stack and text buffer
        self._element_stack: list[str] = []
        self._text: list[str] = []

        # Part and measure accumulation
        self._part_measures: dict[str, list[_MeasureBuilder]] = {}
        self._active_part_id: str | None = None
        self._current_measure: _MeasureBuilder | None = None
        self._current_measure_number = 0
        self._divisions: dict[str, int] = {}
        self._pending_dynamics: dict[str, Dynamic] = {}

        # Scratch for <note>, <key> and <time>
        self._note = _NoteScratch()
        self._key_fifths: int | None = None
        self._key_mode = Mode.MAJOR
        self._time_beats: int | None = None
        self._time_beat_type: int | None = None

        self._start_handlers: dict[MusicXMLElement, Callable[[Mapping[str, str]], None]] = {
            MusicXMLElement.PART_LIST: self._start_part_list,
            MusicXMLElement.SCORE_PART: self._start_score_part,
            MusicXMLElement.PART: self._start_part,
            MusicXMLElement.MEASURE: self._start_measure,
            MusicXMLElement.KEY: self._start_key,
            MusicXMLElement.TIME: self._start_time,
            MusicXMLElement.NOTE: self._start_note,
            MusicXMLElement.REST: self._start_rest,
            MusicXMLElement.CHORD: self._start_chord,
            MusicXMLElement.GRACE: self._start_grace,
            MusicXMLElement.TIE: self._start_tie,
            MusicXMLElement.TIED: self._start_tie,
            MusicXMLElement.LYRIC: self._start_lyric,
            MusicXMLElement.WEDGE: self._start_wedge,
            MusicXMLElement.SOUND: self._start_sound,
            MusicXMLElement.CREATOR: self._start_creator,
        }
        self._end_handlers: dict[MusicXMLElement, Callable[[str], None]] = {
            MusicXMLElement.PART_LIST: self._end_part_list,
            MusicXMLElement.PART_NAME: self._end_part_name,
            MusicXMLElement.SCORE_PART: self._end_score_part,
            MusicXMLElement.PART: self._end_part,
            MusicXMLElement.MEASURE: self._end_measure,
            MusicXMLElement.FIFTHS: self._end_fifths,
            MusicXMLElement.MODE: self._end_mode,
            MusicXMLElement.KEY: self._end_key,
            MusicXMLElement.BEATS: self._end_beats,
            MusicXMLElement.BEAT_TYPE: self._end_beat_type,
            MusicXMLElement.TIME: self._end_time,
            MusicXMLElement.DIVISIONS: self._end_divisions,
            MusicXMLElement.STEP: self._end_step,
            MusicXMLElement.ALTER: self._end_alter,
            MusicXMLElement.OCTAVE: self._end_octave,
            MusicXMLElement.DURATION: self._end_duration,
            MusicXMLElement.TYPE: self._end_type,
            MusicXMLElement.TEXT: self._end_text,
            MusicXMLElement.SYLLABIC: self._end_syllabic,
            MusicXMLElement.LYRIC: self._end_lyric,
            MusicXMLElement.WORK_TITLE: self._end_work_title,
            MusicXMLElement.MOVEMENT_TITLE: self._end_movement_title,
            MusicXMLElement.CREATOR: self._end_creator,
            MusicXMLElement.NOTE: self._end_note,
        }

    # ------------------------------------------------------------------
    # lxml target interface
    # ------------------------------------------------------------------

    def start(self, tag: str, attrib: Mapping[str, str]) -> None:
        name = tag.rpartition("}")[2]
        self._element_stack.append(name)
        self._text = []

        if self._parent() == MusicXMLElement.DYNAMICS.value:
            self._set_pending_dynamic(name)

        element = MusicXMLElement.lookup(name)
        handler = self._start_handlers.get(element) if element is not None else None
        if handler is not None:
            handler(attrib)

    def data(self, text: str) -> None:
        self._text.append(text)

    def end(self, tag: str) -> None:
        name = tag.rpartition("}")[2]
        element = MusicXMLElement.lookup(name)
        handler = self._end_handlers.get(element) if element is not None else None
        if handler is not None:
            handler("".join(self._text).strip())
        if self._element_stack:
            self._element_stack.pop()

    def close(self) -> None:
        # lxml also calls close() after a syntax error, so the score is
        # assembled by the caller once parsing has succeeded.
        return None

    # ------------------------------------------------------------------
    # Score assembly
    # ------------------------------------------------------------------

    def build_score(self) -> Score:
        """
        Assemble the Score from everything collected.

        Raises:
            InvalidMusicXML: If the part list declared no parts.
        """
        if not self._part_entries:
            raise InvalidMusicXML("No parts found")

        parts: list[Part] = []
        for index, entry in enumerate(self._part_entries):
            part_type = infer_part_type(entry.name)
            builders = self._part_measures.get(entry.id, [])
            parts.append(
                Part(
                    name=entry.name,
                    part_type=part_type,
                    measures=tuple(builder.build() for builder in builders),
                    midi_channel=index % MIDI_CHANNELS,
                    midi_program=part_type.default_midi_program,
                )
            )
            logger.debug(
                "Part %r (%s): %d measures", entry.name, part_type.value, len(builders)
            )

        return Score(
            title=self._work_title or self._movement_title or DEFAULT_TITLE,
            composer=self._composer,
            key_signature=self._global_key or KeySignature(),
            time_signature=self._global_time or TimeSignature(),
            tempo=self._tempo if self._tempo is not None else DEFAULT_TEMPO,
            parts=tuple(parts),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _parent(self) -> str | None:
        """Name of the element enclosing the innermost open element."""
        return self._element_stack[-2] if len(self._element_stack) >= 2 else None

    def _in_note(self) -> bool:
        return MusicXMLElement.NOTE.value in self._element_stack

    def _applies_globally(self) -> bool:
        return self._current_measure_number <= 1

    def _set_pending_dynamic(self, name: str) -> None:
        if self._active_part_id is None:
            return
        try:
            dynamic = Dynamic(name)
        except ValueError:
            return
        if not dynamic.is_hairpin:
            self._pending_dynamics[self._active_part_id] = dynamic

    # ── start handlers ────────────────────────────────────────────────

    def _start_part_list(self, attrib: Mapping[str, str]) -> None:
        self._in_part_list = True

    def _start_score_part(self, attrib: Mapping[str, str]) -> None:
        self._score_part_id = attrib.get("id")
        self._score_part_name = None

    def _start_part(self, attrib: Mapping[str, str]) -> None:
        part_id = attrib.get("id")
        self._active_part_id = part_id
        self._current_measure_number = 0
        if part_id is not None:
            self._part_measures.setdefault(part_id, [])

    def _start_measure(self, attrib: Mapping[str, str]) -> None:
        if self._active_part_id is None:
            return
        measures = self._part_measures[self._active_part_id]
        number = _parse_int(attrib.get("number"))
        if number is None:
            number = measures[-1].number + 1 if measures else 1
        self._current_measure_number = number
        self._current_measure = _MeasureBuilder(number=number)
        measures.append(self._current_measure)

    def _start_key(self, attrib: Mapping[str, str]) -> None:
        self._key_fifths = None
        self._key_mode = Mode.MAJOR

    def _start_time(self, attrib: Mapping[str, str]) -> None:
        self._time_beats = None
        self._time_beat_type = None

    def _start_note(self, attrib: Mapping[str, str]) -> None:
        self._note = _NoteScratch()

    def _start_rest(self, attrib: Mapping[str, str]) -> None:
        if self._parent() == MusicXMLElement.NOTE.value:
            self._note.is_rest = True

    def _start_chord(self, attrib: Mapping[str, str]) -> None:
        if self._parent() == MusicXMLElement.NOTE.value:
            self._note.is_chord = True

    def _start_grace(self, attrib: Mapping[str, str]) -> None:
        if self._parent() == MusicXMLElement.NOTE.value:
            self._note.is_grace = True

    def _start_tie(self, attrib: Mapping[str, str]) -> None:
        if self._in_note() and attrib.get("type") == "start":
            self._note.is_tied = True

    def _start_lyric(self, attrib: Mapping[str, str]) -> None:
        # Only the first verse is kept.
        if self._in_note() and not self._note.lyric_done:
            self._note.in_lyric = True
            self._note.lyric_text = None
            self._note.syllabic = Syllabic.SINGLE

    def _start_wedge(self, attrib: Mapping[str, str]) -> None:
        dynamic = _WEDGE_DYNAMICS.get(attrib.get("type", ""))
        if dynamic is None or self._active_part_id is None:
            return
        # An absolute marking already waiting for the next note takes precedence.
        self._pending_dynamics.setdefault(self._active_part_id, dynamic)

    def _start_sound(self, attrib: Mapping[str, str]) -> None:
        if self._tempo is not None:
            return
        tempo = attrib.get("tempo")
        if tempo is None:
            return
        try:
            self._tempo = int(float(tempo))
        except ValueError:
            logger.debug("Ignoring unreadable tempo %r", tempo)

    def _start_creator(self, attrib: Mapping[str, str]) -> None:
        self._creator_type = attrib.get("type")

    # ── end handlers ──────────────────────────────────────────────────

    def _end_part_list(self, text: str) -> None:
        self._in_part_list = False

    def _end_part_name(self, text: str) -> None:
        if self._in_part_list and self._score_part_id is not None:
            self._score_part_name = text

    def _end_score_part(self, text: str) -> None:
        if self._score_part_id is None:
            return
        name = self._score_part_name or self._score_part_id
        self._part_entries.append(_PartListEntry(id=self._score_part_id, name=name))
        self._score_part_id = None

    def _end_part(self, text: str) -> None:
        self._active_part_id = None
        self._current_measure = None

    def _end_measure(self, text: str) -> None:
        self._current_measure = None

    def _end_fifths(self, text: str) -> None:
        self._key_fifths = _parse_int(text)

    def _end_mode(self, text: str) -> None:
        try:
            self._key_mode = Mode(text.lower())
        except ValueError:
            self._key_mode = Mode.MAJOR

    def _end_key(self, text: str) -> None:
        if self._key_fifths is None:
            return
        signature = KeySignature(fifths=self._key_fifths, mode=self._key_mode)
        if self._current_measure is not None:
            self._current_measure.key_signature = signature
        if self._global_key is None or self._applies_globally():
            self._global_key = signature

    def _end_beats(self, text: str) -> None:
        if self._parent() == MusicXMLElement.TIME.value:
            self._time_beats = _parse_int(text)

    def _end_beat_type(self, text: str) -> None:
        if self._parent() == MusicXMLElement.TIME.value:
            self._time_beat_type = _parse_int(text)

    def _end_time(self, text: str) -> None:
        if self._time_beats is None and self._time_beat_type is None:
            return
        signature = TimeSignature(
            beats=self._time_beats or 4,
            beat_type=self._time_beat_type or 4,
        )
        if self._current_measure is not None:
            self._current_measure.time_signature = signature
        if self._global_time is None or self._applies_globally():
            self._global_time = signature

    def _end_divisions(self, text: str) -> None:
        divisions = _parse_int(text)
        if divisions is not None and divisions > 0 and self._active_part_id is not None:
            self._divisions[self._active_part_id] = divisions

    def _end_step(self, text: str) -> None:
        if self._parent() == MusicXMLElement.PITCH.value:
            self._note.step = Step.from_text(text)

    def _end_alter(self, text: str) -> None:
        if self._parent() == MusicXMLElement.PITCH.value:
            self._note.alter = _parse_int(text) or 0

    def _end_octave(self, text: str) -> None:
        if self._parent() == MusicXMLElement.PITCH.value:
            octave = _parse_int(text)
            self._note.octave = octave if octave is not None else 4

    def _end_duration(self, text: str) -> None:
        # <backup> and <forward> also carry a <duration>.
        if self._parent() == MusicXMLElement.NOTE.value:
            self._note.duration = _parse_float(text) or 0.0

    def _end_type(self, text: str) -> None:
        if self._parent() == MusicXMLElement.NOTE.value:
            self._note.note_type = NoteType.from_musicxml(text)

    def _end_text(self, text: str) -> None:
        if not self._note.in_lyric or self._parent() != MusicXMLElement.LYRIC.value:
            return
        if self._note.lyric_text is None:
            self._note.lyric_text = text
        else:
            self._note.lyric_text = f"{self._note.lyric_text} {text}"

    def _end_syllabic(self, text: str) -> None:
        if self._note.in_lyric:
            try:
                self._note.syllabic = Syllabic(text)
            except ValueError:
                self._note.syllabic = Syllabic.SINGLE

    def _end_lyric(self, text: str) -> None:
        if self._note.in_lyric:
            self._note.in_lyric = False
            self._note.lyric_done = True

    def _end_work_title(self, text: str) -> None:
        if text:
            self._work_title = text

    def _end_movement_title(self, text: str) -> None:
        if text:
            self._movement_title = text

    def _end_creator(self, text: str) -> None:
        if text and self._composer is None and self._creator_type in (None, "composer"):
            self._composer = text
        self._creator_type = None

    def _end_note(self, text: str) -> None:
        scratch = self._note
        part_id = self._active_part_id
        measure = self._current_measure
        if scratch.is_grace or part_id is None or measure is None:
            return

        divisions = self._divisions.get(part_id, 1)
        duration = scratch.duration / divisions

        pitch: Pitch | None = None
        if not scratch.is_rest and scratch.step is not None:
            pitch = Pitch(step=scratch.step, alter=scratch.alter, octave=scratch.octave)

        if scratch.is_chord and measure.merge_chord_pitch(pitch):
            return

        lyric = None
        if scratch.lyric_text is not None:
            lyric = Lyric(text=scratch.lyric_text, syllabic=scratch.syllabic)

        measure.notes.append(
            Note(
                pitches=(pitch,) if pitch is not None else (),
                duration=duration,
                note_type=scratch.note_type or NoteType.closest_to(duration),
                is_rest=pitch is None,
                is_tied=scratch.is_tied and pitch is not None,
                lyric=lyric,
                dynamic=self._pending_dynamics.pop(part_id, None),
            )
        )


# ── Public API ─────────────────────────────────────────────────────────────


class MusicXMLParser:
    """
    Parse MusicXML score-partwise documents into Score objects.

    Each call builds a fresh handler, so one parser instance can be shared
    between threads.
    """

    def _new_parser(self) -> tuple[etree.XMLParser, _MusicXMLHandler]:
        handler = _MusicXMLHandler()
        parser = etree.XMLParser(
            target=handler,
            resolve_entities=False,
            no_network=True,
            load_dtd=False,
        )
        return parser, handler

    def parse(self, data: bytes | str) -> Score:
        """
        Parse a complete MusicXML document.

        Args:
            data: Raw document bytes (a str is encoded as UTF-8 first).

        Returns:
            The parsed Score.

        Raises:
            ParsingFailed:   If the document is not well-formed XML.
            InvalidMusicXML: If the document declares no parts.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not data.strip():
            raise ParsingFailed("Empty document")
        parser, handler = self._new_parser()
        try:
            parser.feed(data)
            parser.close()
        except etree.XMLSyntaxError as exc:
            raise ParsingFailed(str(exc) or "Malformed XML") from exc
        score = handler.build_score()
        logger.debug("Parsed %r with %d part(s)", score.title, len(score.parts))
        return score

    def parse_file(self, path: str | Path) -> Score:
        """
        Parse a MusicXML file, feeding it to the parser in chunks.

        Raises:
            ScoreFileNotFound: If ``path`` does not exist.
            ParsingFailed:     If the document is not well-formed XML.
            InvalidMusicXML:   If the document declares no parts.
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise ScoreFileNotFound(str(file_path))
        if file_path.stat().st_size == 0:
            raise ParsingFailed("Empty document")

        parser, handler = self._new_parser()
        try:
            with open(file_path, "rb") as fh:
                for chunk in iter(lambda: fh.read(_READ_CHUNK_SIZE), b""):
                    parser.feed(chunk)
            parser.close()
        except etree.XMLSyntaxError as exc:
            raise ParsingFailed(str(exc) or "Malformed XML") from exc
        score = handler.build_score()
        logger.debug("Parsed %s: %r with %d part(s)", file_path, score.title, len(score.parts))
        return score


def parse(data: bytes | str) -> Score:
    """Parse MusicXML bytes into a Score. See :meth:`MusicXMLParser.parse`."""
    return MusicXMLParser().parse(data)


def parse_file(path: str | Path) -> Score:
    """Parse a MusicXML file into a Score. See :meth:`MusicXMLParser.parse_file`."""
    return MusicXMLParser().parse_file(path)
