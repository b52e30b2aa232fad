"""ChoirHelper: MusicXML choir scores to playback schedules, staff layouts and MIDI."""

__version__ = "0.1.0"
