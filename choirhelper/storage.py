"""ScoreStorage: keeps scores as JSON files in a directory."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from choirhelper import serialization
from choirhelper.errors import EncodingError, ScoreFileNotFound, StorageError
from choirhelper.models import Score

logger = logging.getLogger(__name__)

SCORE_EXTENSION = ".choirhelper"


class ScoreStorage:
    """
    Saves, loads and deletes scores, one ``<score id>.choirhelper`` file each.

    Files are pretty-printed JSON with sorted keys (see
    ``choirhelper.serialization``) and are replaced atomically on save.
    """

    def __init__(self, base_directory: str | Path) -> None:
        self.base_directory = Path(base_directory)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _path_for(self, score_id: str) -> Path:
        return self.base_directory / f"{score_id}{SCORE_EXTENSION}"

    def _write_atomic(self, path: Path, content: str) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=".choirhelper_", dir=self.base_directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def save(self, score: Score) -> Path:
        """
        Write ``score`` to disk, replacing any earlier version.

        Returns:
            Path of the written file.

        Raises:
            StorageError: If the directory or file cannot be written.
        """
        path = self._path_for(score.id)
        try:
            self.base_directory.mkdir(parents=True, exist_ok=True)
            self._write_atomic(path, serialization.dumps(score))
        except OSError as exc:
            raise StorageError(f"Could not save '{path}': {exc}") from exc
        logger.debug("Saved %r to %s", score.title, path)
        return path

    def load(self, score_id: str) -> Score:
        """
        Read one score by id.

        Raises:
            ScoreFileNotFound: If no file exists for ``score_id``.
            EncodingError:     If the file is not a valid score.
            StorageError:      If the file cannot be read.
        """
        path = self._path_for(score_id)
        if not path.is_file():
            raise ScoreFileNotFound(str(path))
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Could not read '{path}': {exc}") from exc
        return serialization.loads(data)

    def load_all(self) -> list[Score]:
        """
        Every readable score in the directory, sorted by title.

        Files that cannot be decoded are skipped with a warning.
        """
        if not self.base_directory.is_dir():
            return []

        scores: list[Score] = []
        for path in sorted(self.base_directory.glob(f"*{SCORE_EXTENSION}")):
            try:
                scores.append(serialization.loads(path.read_bytes()))
            except (OSError, EncodingError) as exc:
                logger.warning("Skipping unreadable score file %s: %s", path, exc)
        return sorted(scores, key=lambda score: score.title)

    def delete(self, score_id: str) -> None:
        """Remove a stored score; unknown ids are ignored."""
        path = self._path_for(score_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not delete '{path}': {exc}") from exc
