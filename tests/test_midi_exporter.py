"""Unit tests for MidiExporter (writes to memory or tmp_path only)."""

import struct
from pathlib import Path

import pytest

from choirhelper.midi_exporter import MidiExporter
from choirhelper.models import Measure, Note, Part, PartType, Pitch, Score, Step, TimeSignature
from choirhelper.musicxml import parse_file
from choirhelper.scheduler import MidiScheduler, schedule

FIXTURE = Path(__file__).parent / "data" / "amazing_grace.musicxml"


def _sample_score() -> Score:
    tenor = Part(
        name="Tenor",
        part_type=PartType.TENOR,
        measures=(Measure(number=1, notes=(Note.single(Pitch(Step.C, 4), 1.0), Note.single(Pitch(Step.E, 4), 2.0))),),
        midi_channel=2,
        midi_program=52,
    )
    piano = Part(
        name="Piano",
        part_type=PartType.PIANO,
        measures=(Measure(number=1, notes=(Note(pitches=(Pitch(Step.C, 3), Pitch(Step.G, 3)), duration=3.0),)),),
        midi_channel=3,
        midi_program=0,
    )
    return Score(title="Demo", time_signature=TimeSignature(3, 4), tempo=100, parts=(tenor, piano))


def _header(data: bytes) -> tuple[int, int, int]:
    """(format, track count, ticks per quarter) from the MThd chunk."""
    assert data[:4] == b"MThd"
    return struct.unpack(">HHH", data[8:14])


def test_header_has_conductor_plus_one_track_per_part() -> None:
    score = _sample_score()
    data = MidiExporter().to_bytes(score, schedule(score))
    assert _header(data) == (1, 3, 480)
    assert data.count(b"MTrk") == 3


def test_custom_resolution() -> None:
    score = _sample_score()
    data = MidiExporter(ticks_per_quarter=960).to_bytes(score, schedule(score))
    assert _header(data)[2] == 960


def test_track_names_are_part_names() -> None:
    score = _sample_score()
    data = MidiExporter().to_bytes(score, schedule(score))
    assert b"Tenor" in data
    assert b"Piano" in data


def test_program_change_on_part_channel() -> None:
    score = _sample_score()
    data = MidiExporter().to_bytes(score, schedule(score))
    assert bytes([0xC2, 52]) in data
    assert bytes([0xC3, 0]) in data


def test_tempo_and_time_signature_meta_events() -> None:
    score = _sample_score()
    data = MidiExporter().to_bytes(score, schedule(score))
    # 100 BPM = 600000 microseconds per quarter note.
    assert b"\xff\x51\x03" + (600000).to_bytes(3, "big") in data
    # 3/4: numerator 3, denominator 2**2.
    assert b"\xff\x58\x04\x03\x02" in data


def test_schedule_tempo_overrides_score_tempo() -> None:
    score = _sample_score()
    data = MidiExporter().to_bytes(score, MidiScheduler(tempo=60).schedule(score))
    assert b"\xff\x51\x03" + (1000000).to_bytes(3, "big") in data


def test_empty_score_still_writes_a_file() -> None:
    score = Score(title="Empty")
    data = MidiExporter().to_bytes(score, schedule(score))
    assert data.startswith(b"MThd")


def test_export_writes_file(tmp_path: Path) -> None:
    score = _sample_score()
    output = tmp_path / "demo.mid"
    MidiExporter().export(score, schedule(score), str(output))
    assert output.read_bytes() == MidiExporter().to_bytes(score, schedule(score))


def test_export_to_directory_raises_os_error(tmp_path: Path) -> None:
    score = _sample_score()
    with pytest.raises(OSError):
        MidiExporter().export(score, schedule(score), str(tmp_path))


@pytest.mark.integration
def test_amazing_grace_midi(tmp_path: Path) -> None:
    score = parse_file(FIXTURE)
    output = tmp_path / "amazing_grace.mid"
    MidiExporter().export(score, schedule(score), str(output))
    data = output.read_bytes()
    assert _header(data) == (1, 6, 480)
    for name in (b"Soprano", b"Alto", b"Tenor", b"Bass", b"Piano"):
        assert name in data
