"""JSON round-tripping for the score model.

Field names follow the dataclasses; enums are stored by value. Note
payloads written before chords were modelled carry a single ``pitch``
object instead of a ``pitches`` list and still decode.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from choirhelper.errors import EncodingError
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


# ------------------------------------------------------------------
# Encoding
# ------------------------------------------------------------------


def note_to_dict(note: Note) -> dict[str, Any]:
    return asdict(note)


def score_to_dict(score: Score) -> dict[str, Any]:
    """Plain-dict form of ``score``; enums stay str subclasses, so json can write them."""
    return asdict(score)


def dumps(score: Score, *, indent: int | None = 2) -> str:
    return json.dumps(score_to_dict(score), indent=indent, sort_keys=True, ensure_ascii=False)


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------


def _pitch_from_dict(data: dict[str, Any]) -> Pitch:
    return Pitch(
        step=Step(data["step"].lower()),
        alter=int(data.get("alter", 0)),
        octave=int(data["octave"]),
    )


def _lyric_from_dict(data: dict[str, Any] | None) -> Lyric | None:
    if data is None:
        return None
    return Lyric(text=str(data["text"]), syllabic=Syllabic(data.get("syllabic", "single")))


def note_from_dict(data: dict[str, Any]) -> Note:
    """
    Decode a note.

    ``pitches`` wins when present; otherwise a legacy ``pitch`` object becomes
    a one-element list, and a note with neither has no pitches.

    Raises:
        EncodingError: If a required field is missing or has the wrong type.
    """
    try:
        if "pitches" in data:
            pitches = tuple(_pitch_from_dict(p) for p in data["pitches"] or ())
        elif data.get("pitch") is not None:
            pitches = (_pitch_from_dict(data["pitch"]),)
        else:
            pitches = ()
        dynamic = data.get("dynamic")
        return Note(
            pitches=pitches,
            duration=float(data["duration"]),
            note_type=NoteType(data.get("note_type", NoteType.QUARTER.value)),
            is_rest=bool(data.get("is_rest", False)),
            is_tied=bool(data.get("is_tied", False)),
            lyric=_lyric_from_dict(data.get("lyric")),
            dynamic=Dynamic(dynamic) if dynamic is not None else None,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise EncodingError(f"Invalid note payload ({exc!r})") from exc


def _key_from_dict(data: dict[str, Any] | None) -> KeySignature | None:
    if data is None:
        return None
    return KeySignature(fifths=int(data["fifths"]), mode=Mode(data.get("mode", "major")))


def _time_from_dict(data: dict[str, Any] | None) -> TimeSignature | None:
    if data is None:
        return None
    return TimeSignature(beats=int(data["beats"]), beat_type=int(data["beat_type"]))


def _measure_from_dict(data: dict[str, Any]) -> Measure:
    return Measure(
        number=int(data["number"]),
        notes=tuple(note_from_dict(n) for n in data.get("notes", ())),
        time_signature=_time_from_dict(data.get("time_signature")),
        key_signature=_key_from_dict(data.get("key_signature")),
    )


def _part_from_dict(data: dict[str, Any]) -> Part:
    return Part(
        name=str(data["name"]),
        part_type=PartType(data["part_type"]),
        measures=tuple(_measure_from_dict(m) for m in data.get("measures", ())),
        midi_channel=int(data.get("midi_channel", 0)),
        midi_program=int(data.get("midi_program", 0)),
    )


def score_from_dict(data: dict[str, Any]) -> Score:
    """
    Decode a score produced by :func:`score_to_dict`.

    Raises:
        EncodingError: If the payload is not a valid score.
    """
    try:
        optional: dict[str, Any] = {}
        if data.get("id"):
            optional["id"] = str(data["id"])
        return Score(
            title=str(data["title"]),
            composer=data.get("composer"),
            key_signature=_key_from_dict(data["key_signature"]) or KeySignature(),
            time_signature=_time_from_dict(data["time_signature"]) or TimeSignature(),
            tempo=int(data["tempo"]),
            parts=tuple(_part_from_dict(p) for p in data.get("parts", ())),
            user_part_types=tuple(PartType(t) for t in data.get("user_part_types", ("tenor",))),
            **optional,
        )
    except EncodingError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise EncodingError(f"Invalid score payload ({exc!r})") from exc


def loads(text: str | bytes) -> Score:
    """
    Parse JSON text into a Score.

    Bytes are decoded as UTF-8.

    Raises:
        EncodingError: If the text is not UTF-8, not JSON or not a score.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EncodingError(f"Not UTF-8 text ({exc.reason} at byte {exc.start})") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise EncodingError(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise EncodingError("Score payload must be a JSON object")
    return score_from_dict(data)
