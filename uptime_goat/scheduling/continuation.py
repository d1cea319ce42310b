"""
Continuation store: persists the next target time across restarts.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from uptime_goat.utils.error_handling import ContinuationStateError

logger = logging.getLogger(__name__)


class ContinuationStore:
    """
    Stores a single value, the next target time, as base-10 epoch milliseconds.

    A missing, unreadable or unparsable file all mean "no continuation".
    Writes go through a temporary file and an atomic rename so that an
    interrupted write never leaves a truncated value behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[int]:
        """
        Returns:
            The persisted target time, or None if none is usable
        """
        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read continuation state from {self.path}: {e}")
            return None

        try:
            value = int(content)
        except ValueError:
            logger.warning(f"Ignoring unparsable continuation state in {self.path}: {content[:40]!r}")
            return None

        if value <= 0:
            return None
        return value

    def save(self, target_ms: int) -> None:
        """
        Persist the target time.

        Raises:
            ContinuationStateError: If the value could not be written
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(str(int(target_ms)))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise ContinuationStateError(f"Failed to save timestamp to {self.path}: {e}") from e
