"""Score data model: immutable value types shared by the parser, scheduler and layout."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

# ── Pitch constants ─────────────────────────────────────────────────────────
SEMITONES_PER_OCTAVE = 12
STEPS_PER_OCTAVE = 7
A4_MIDI = 69
A4_FREQUENCY = 440.0

_ACCIDENTAL_GLYPHS: Final[dict[int, str]] = {1: "♯", -1: "♭", 2: "𝄪", -2: "𝄫"}


class Step(str, Enum):
    """Natural letter name of a pitch."""

    C = "c"
    D = "d"
    E = "e"
    F = "f"
    G = "g"
    A = "a"
    B = "b"

    @property
    def base_semitone(self) -> int:
        """Semitone offset of the natural note above C."""
        return _STEP_SEMITONES[self]

    @property
    def index(self) -> int:
        """Position of the letter within the octave (C=0 ... B=6)."""
        return _STEP_ORDER.index(self)

    @classmethod
    def from_text(cls, text: str) -> Step | None:
        try:
            return cls(text.strip().lower())
        except ValueError:
            return None


_STEP_ORDER: Final[list[Step]] = list(Step)
_STEP_SEMITONES: Final[dict[Step, int]] = {
    Step.C: 0,
    Step.D: 2,
    Step.E: 4,
    Step.F: 5,
    Step.G: 7,
    Step.A: 9,
    Step.B: 11,
}


@dataclass(frozen=True)
class Pitch:
    """
    A spelled pitch.

    Attributes:
        step:   Natural letter name.
        alter:  Chromatic offset in semitones (-2 .. 2 in practice).
        octave: Scientific octave number (middle C is C4).
    """

    step: Step
    octave: int
    alter: int = 0

    @property
    def midi_number(self) -> int:
        """MIDI note number: C-1 = 0, C4 (middle C) = 60."""
        return (self.octave + 1) * SEMITONES_PER_OCTAVE + self.step.base_semitone + self.alter

    @property
    def frequency(self) -> float:
        """Equal-tempered frequency in Hz, A4 = 440."""
        return A4_FREQUENCY * 2.0 ** ((self.midi_number - A4_MIDI) / SEMITONES_PER_OCTAVE)

    @property
    def diatonic_index(self) -> int:
        """Staff-position key, one per letter name: C0 = 0, C4 = 28, F5 = 38."""
        return self.octave * STEPS_PER_OCTAVE + self.step.index

    @property
    def display_name(self) -> str:
        """Human-readable name, e.g. 'F♯4' or 'B♭3'."""
        accidental = _ACCIDENTAL_GLYPHS.get(self.alter, "")
        return f"{self.step.value.upper()}{accidental}{self.octave}"


class NoteType(str, Enum):
    """Visual duration class of a note, independent of its numeric duration."""

    WHOLE = "whole"
    HALF = "half"
    QUARTER = "quarter"
    EIGHTH = "eighth"
    SIXTEENTH = "sixteenth"

    @property
    def relative_duration(self) -> float:
        """Nominal length in quarter notes."""
        return _RELATIVE_DURATIONS[self]

    @classmethod
    def from_musicxml(cls, text: str) -> NoteType | None:
        """Map a MusicXML ``<type>`` value; anything shorter than a 16th folds into SIXTEENTH."""
        return _MUSICXML_TYPES.get(text.strip())

    @classmethod
    def closest_to(cls, duration: float) -> NoteType:
        """Return the note type whose relative duration is nearest to ``duration``."""
        if duration <= 0:
            return cls.QUARTER
        return min(cls, key=lambda note_type: abs(note_type.relative_duration - duration))


_RELATIVE_DURATIONS: Final[dict[NoteType, float]] = {
    NoteType.WHOLE: 4.0,
    NoteType.HALF: 2.0,
    NoteType.QUARTER: 1.0,
    NoteType.EIGHTH: 0.5,
    NoteType.SIXTEENTH: 0.25,
}

_MUSICXML_TYPES: Final[dict[str, NoteType]] = {
    "breve": NoteType.WHOLE,
    "whole": NoteType.WHOLE,
    "half": NoteType.HALF,
    "quarter": NoteType.QUARTER,
    "eighth": NoteType.EIGHTH,
    "16th": NoteType.SIXTEENTH,
    "32nd": NoteType.SIXTEENTH,
    "64th": NoteType.SIXTEENTH,
}


class Dynamic(str, Enum):
    PPP = "ppp"
    PP = "pp"
    P = "p"
    MP = "mp"
    MF = "mf"
    F = "f"
    FF = "ff"
    FFF = "fff"
    CRESCENDO = "crescendo"
    DECRESCENDO = "decrescendo"

    @property
    def is_hairpin(self) -> bool:
        return self in (Dynamic.CRESCENDO, Dynamic.DECRESCENDO)


class Syllabic(str, Enum):
    SINGLE = "single"
    BEGIN = "begin"
    MIDDLE = "middle"
    END = "end"


@dataclass(frozen=True)
class Lyric:
    """One lyric syllable attached to a note."""

    text: str
    syllabic: Syllabic = Syllabic.SINGLE


@dataclass(frozen=True)
class Note:
    """
    A note, chord or rest.

    A chord is a single Note with more than one pitch; every pitch shares the
    duration, type, tie, lyric and dynamic of the note.

    Attributes:
        pitches:   Sounding pitches in score order. Empty for a rest.
        duration:  Length in quarter notes.
        note_type: Visual duration class.
        is_rest:   True for rests (which never carry pitches).
        is_tied:   A tie starts here and continues into the next same-pitch note.
        lyric:     Optional lyric syllable.
        dynamic:   Optional dynamic marking that appears at this note.
    """

    pitches: tuple[Pitch, ...] = ()
    duration: float = 1.0
    note_type: NoteType = NoteType.QUARTER
    is_rest: bool = False
    is_tied: bool = False
    lyric: Lyric | None = None
    dynamic: Dynamic | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "pitches", tuple(self.pitches))
        if self.is_rest and self.pitches:
            raise ValueError("A rest cannot carry pitches.")

    @classmethod
    def single(cls, pitch: Pitch | None, duration: float, **kwargs: object) -> Note:
        """Build a note from a single optional pitch (None gives an empty pitch list)."""
        pitches = (pitch,) if pitch is not None else ()
        return cls(pitches=pitches, duration=duration, **kwargs)  # type: ignore[arg-type]

    @property
    def pitch(self) -> Pitch | None:
        """First pitch, or None for a rest."""
        return self.pitches[0] if self.pitches else None

    @property
    def is_chord(self) -> bool:
        return len(self.pitches) > 1

    @property
    def midi_numbers(self) -> tuple[int, ...]:
        return tuple(p.midi_number for p in self.pitches)


class Mode(str, Enum):
    MAJOR = "major"
    MINOR = "minor"


_MAJOR_KEY_NAMES: Final[dict[int, str]] = {
    -7: "C♭", -6: "G♭", -5: "D♭", -4: "A♭", -3: "E♭", -2: "B♭", -1: "F", 0: "C",
    1: "G", 2: "D", 3: "A", 4: "E", 5: "B", 6: "F♯", 7: "C♯",
}
_MINOR_KEY_NAMES: Final[dict[int, str]] = {
    -7: "a♭", -6: "e♭", -5: "b♭", -4: "f", -3: "c", -2: "g", -1: "d", 0: "a",
    1: "e", 2: "b", 3: "f♯", 4: "c♯", 5: "g♯", 6: "d♯", 7: "a♯",
}


@dataclass(frozen=True)
class KeySignature:
    """Key signature as a position on the circle of fifths (negative = flats)."""

    fifths: int = 0
    mode: Mode = Mode.MAJOR

    @property
    def display_name(self) -> str:
        names = _MAJOR_KEY_NAMES if self.mode is Mode.MAJOR else _MINOR_KEY_NAMES
        return names.get(self.fifths, "?")


@dataclass(frozen=True)
class TimeSignature:
    beats: int = 4
    beat_type: int = 4

    @property
    def display_name(self) -> str:
        return f"{self.beats}/{self.beat_type}"

    @property
    def beats_per_measure(self) -> float:
        return float(self.beats)

    @property
    def beat_duration(self) -> float:
        """Length of one beat in quarter notes (a 6/8 beat is 0.5)."""
        return 4.0 / self.beat_type


@dataclass(frozen=True)
class Measure:
    """
    One bar of one part.

    ``time_signature`` and ``key_signature`` are only set when the bar
    declares a change; the score-level signatures apply otherwise.
    """

    number: int
    notes: tuple[Note, ...] = ()
    time_signature: TimeSignature | None = None
    key_signature: KeySignature | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "notes", tuple(self.notes))

    @property
    def total_duration(self) -> float:
        """Sum of note durations in quarter notes."""
        return sum(note.duration for note in self.notes)


class ClefType(str, Enum):
    TREBLE = "treble"
    BASS = "bass"


class PartType(str, Enum):
    """Vocal or instrumental role of a part."""

    SOPRANO = "soprano"
    ALTO = "alto"
    TENOR = "tenor"
    BASS = "bass"
    PIANO = "piano"
    SOPRANO1 = "soprano1"
    SOPRANO2 = "soprano2"
    ALTO1 = "alto1"
    ALTO2 = "alto2"
    TENOR1 = "tenor1"
    TENOR2 = "tenor2"
    BASS1 = "bass1"
    BASS2 = "bass2"
    DESCANT = "descant"
    ACCOMPANIMENT = "accompaniment"

    @property
    def is_vocal(self) -> bool:
        return self not in (PartType.PIANO, PartType.ACCOMPANIMENT)

    @property
    def display_name(self) -> str:
        """'Soprano 1' for SOPRANO1, 'Accompaniment' for ACCOMPANIMENT."""
        name = self.value.rstrip("12").capitalize()
        number = self.value[len(name):]
        return f"{name} {number}" if number else name

    @property
    def default_midi_program(self) -> int:
        """General MIDI program: acoustic grand (0) or choir aahs (52)."""
        return 52 if self.is_vocal else 0

    @property
    def clef_type(self) -> ClefType:
        if self in (PartType.BASS, PartType.BASS1, PartType.BASS2):
            return ClefType.BASS
        return ClefType.TREBLE

    @property
    def octave_transposition(self) -> int:
        """Octaves added for display: tenors read treble clef an octave above sounding pitch."""
        if self in (PartType.TENOR, PartType.TENOR1, PartType.TENOR2):
            return 1
        return 0


@dataclass(frozen=True)
class Part:
    """
    One part (voice or instrument) of a score.

    Attributes:
        name:         Name declared in the score.
        part_type:    Inferred role; drives clef, display transposition and program.
        measures:     Bars in order.
        midi_channel: Playback channel (0-15).
        midi_program: General MIDI program number (0-127).
    """

    name: str
    part_type: PartType
    measures: tuple[Measure, ...] = ()
    midi_channel: int = 0
    midi_program: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "measures", tuple(self.measures))

    @property
    def is_vocal(self) -> bool:
        return self.part_type.is_vocal

    @property
    def total_duration(self) -> float:
        return sum(measure.total_duration for measure in self.measures)

    @property
    def notes(self) -> list[tuple[Note, int]]:
        """All notes in score order, each paired with its measure number."""
        return [(note, measure.number) for measure in self.measures for note in measure.notes]


def _new_score_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Score:
    """
    A parsed or programmatically built score.

    All parts are expected to have the same number of measures; this is not
    enforced here.
    """

    title: str
    key_signature: KeySignature = KeySignature()
    time_signature: TimeSignature = TimeSignature()
    tempo: int = 120
    parts: tuple[Part, ...] = ()
    composer: str | None = None
    user_part_types: tuple[PartType, ...] = (PartType.TENOR,)
    id: str = field(default_factory=_new_score_id, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parts", tuple(self.parts))
        object.__setattr__(self, "user_part_types", tuple(self.user_part_types))

    @property
    def vocal_parts(self) -> list[Part]:
        return [part for part in self.parts if part.is_vocal]

    @property
    def accompaniment_parts(self) -> list[Part]:
        return [part for part in self.parts if not part.is_vocal]

    @property
    def user_parts(self) -> list[Part]:
        """Parts whose type is one the practising singer sings."""
        return [part for part in self.parts if part.part_type in self.user_part_types]

    @property
    def measure_count(self) -> int:
        return len(self.parts[0].measures) if self.parts else 0

    @property
    def duration_seconds(self) -> float:
        """Length of the first part at the score tempo."""
        if not self.parts or not self.parts[0].measures:
            return 0.0
        return self.parts[0].total_duration / self.tempo * 60.0
