import logging
import os
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

NOTHING_TO_UNDO = "Nothing to undo"
DEFAULT_CAPACITY = 20


@dataclass
class UndoEntry:
  path: str
  prior_content: Optional[bytes]  # None: the file did not exist
  timestamp: float = field(default_factory=time.time)


class UndoLedger:
  """Bounded stack of pre-mutation file snapshots.

  Pushing past `capacity` drops the oldest snapshot. `undo_last` restores
  the newest one: a file that did not exist is removed again, otherwise the
  captured bytes are written back.
  """

  def __init__(self, capacity=DEFAULT_CAPACITY):
    if capacity < 1:
      raise ValueError("undo capacity must be at least 1")
    self.capacity = capacity
    self._entries = deque(maxlen=capacity)

  def __len__(self):
    return len(self._entries)

  def snapshot(self, path):
    prior = None
    if os.path.isfile(path):
      with open(path, "rb") as f:
        prior = f.read()
    self._entries.append(UndoEntry(path, prior))
    logger.debug("undo snapshot %s (existed=%s, depth=%d)", path, prior is not None, len(self._entries))

  def undo_last(self):
    if not self._entries:
      return NOTHING_TO_UNDO
    entry = self._entries.pop()
    if entry.prior_content is None:
      try:
        os.remove(entry.path)
      except OSError as e:
        logger.warning("undo could not remove %s: %s", entry.path, e)
      return f"Undone: removed {entry.path}"
    try:
      with open(entry.path, "wb") as f:
        f.write(entry.prior_content)
    except OSError as e:
      logger.warning("undo could not restore %s: %s", entry.path, e)
      return f"Error: could not restore {entry.path}: {e}"
    return f"Undone: restored {entry.path}"
