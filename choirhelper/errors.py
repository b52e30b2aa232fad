"""Exception hierarchy for ChoirHelper."""


class ChoirHelperError(Exception):
    """Base class; ``str(error)`` is a single human-readable message."""

    prefix = "Error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(f"{self.prefix}: {detail}" if detail else self.prefix)


class ScoreFileNotFound(ChoirHelperError):
    prefix = "File not found"


class ParsingFailed(ChoirHelperError):
    """The input is not well-formed XML; ``detail`` carries the parser's description."""

    prefix = "Parsing failed"


class InvalidMusicXML(ChoirHelperError):
    """Well-formed XML that lacks required MusicXML content (e.g. no parts)."""

    prefix = "Invalid MusicXML"


class StorageError(ChoirHelperError):
    prefix = "Storage error"


class EncodingError(ChoirHelperError):
    prefix = "Encoding error"
