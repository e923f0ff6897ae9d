"""
Persistence of the displayed text.

The text lives in a single JSON document, {"text": "..."}, at a fixed path.
Loading never fails: a missing or unusable file yields the default text.
"""

import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)

DEFAULT_TEXT = "The quick brown fox jumps"


class TextStore:
    def __init__(self, path, default_text=DEFAULT_TEXT):
        self.path = os.path.expanduser(str(path))
        self.default_text = default_text

    def load(self) -> str:
        """Return the persisted text, or the default if none is usable."""
        if not os.path.exists(self.path):
            logger.info(f"{self} no saved text, using default")
            return self.default_text

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"{self} unreadable text file, using default: {type(e).__name__}: {e}")
            return self.default_text

        text = document.get("text") if isinstance(document, dict) else None
        if not isinstance(text, str):
            logger.warning(f"{self} text file has no 'text' string, using default")
            return self.default_text

        return text

    def save(self, text: str):
        """
        Overwrite the persisted text.

        The file is replaced atomically so a crash mid-write leaves the
        previous text intact.

        Raises:
            OSError: if the file cannot be written
        """
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".text-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"text": text}, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.debug(f"{self} saved {len(text)} characters")

    def __str__(self):
        return f"TextStore[{self.path}]"
