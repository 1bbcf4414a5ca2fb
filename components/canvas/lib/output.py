"""
File handling for prompt canvas documents.

The canvas file is the only storage: a document is loaded by parsing the
file and saved by serializing it back. CanvasFile remembers the last text it
read or wrote, which is how it tells its own writes apart from edits made by
someone else (another editor, git checkout, ...).
"""

import logging
from pathlib import Path
from typing import Optional

from .canonicalize import serialize
from .models import PromptDocument
from .parsing import parse


class CanvasFileError(Exception):
    """Base class for canvas file errors."""
    pass


class ExternalChangeError(CanvasFileError):
    """Raised when saving over a file that changed since it was last read."""
    pass


def write_if_changed(path: Path, content: str) -> bool:
    """
    Write content to path unless the file already holds exactly that text.

    Content is encoded before the file is opened, so text that cannot be
    written (UnicodeEncodeError) never truncates an existing file.

    Returns:
        True if the file was written, False if it was left alone
    """
    data = content.encode('utf-8')
    if path.exists() and path.read_bytes() == data:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return True


class CanvasFile:
    """
    A canvas file on disk plus the text last seen by this process.

    Typical use by an editing host:

        canvas = CanvasFile(path)
        doc = canvas.load()
        ...edit doc...
        canvas.save(doc)
        ...
        if canvas.has_external_change():
            doc = canvas.load()
    """

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)
        self._known_text: Optional[str] = None

    def _read(self) -> str:
        try:
            return self.path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return ''
        except (OSError, UnicodeDecodeError) as e:
            raise CanvasFileError(f"Cannot read {self.path}: {e}") from e

    def load(self) -> PromptDocument:
        """Parse the file (a missing file is an empty document)."""
        text = self._read()
        self._known_text = text
        return parse(text, logger=self.logger)

    def has_external_change(self) -> bool:
        """True if the file no longer holds the text this object last read or wrote."""
        if self._known_text is None:
            return False
        return self._read() != self._known_text

    def save(self, document: PromptDocument, force: bool = False) -> bool:
        """
        Serialize document into the file.

        Args:
            document: Document to write
            force: Overwrite even if the file changed externally

        Returns:
            True if the file was written, False if it already matched

        Raises:
            ExternalChangeError: File changed since last load/save and force is False
            CanvasFileError: File could not be written
        """
        if not force and self.has_external_change():
            raise ExternalChangeError(f"{self.path} changed on disk since it was loaded")

        text = serialize(document)
        try:
            written = write_if_changed(self.path, text)
        except (OSError, UnicodeEncodeError) as e:
            raise CanvasFileError(f"Cannot write {self.path}: {e}") from e

        self._known_text = text
        if written:
            self.logger.debug(f"Saved {len(document.prompts)} prompt(s) to {self.path}")
        return written
