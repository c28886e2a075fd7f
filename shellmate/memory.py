import json
import logging
from pathlib import Path

from filelock import FileLock

from . import config

logger = logging.getLogger(__name__)


class MemoryStore:
  """Flat key/value facts the assistant should keep across sessions.

  Facts keep insertion order so the system prompt and `/memory` listing are
  stable.
  """

  def __init__(self, path=None, facts=None):
    self.path = Path(path or config.MEMORY_FILE)
    self.facts = dict(facts or {})

  @classmethod
  def load(cls, path=None):
    store = cls(path)
    if not store.path.exists():
      return store
    try:
      with FileLock(str(store.path) + ".lock"):
        with open(store.path, "r") as f:
          data = json.load(f)
      if isinstance(data, dict):
        store.facts = {str(k): str(v) for k, v in data.items()}
    except (OSError, ValueError) as e:
      logger.warning("could not read memory %s: %s", store.path, e)
    return store

  def save(self):
    self.path.parent.mkdir(parents=True, exist_ok=True)
    with FileLock(str(self.path) + ".lock"):
      with open(self.path, "w") as f:
        json.dump(self.facts, f, indent=2)

  def remember(self, key, value):
    self.facts.pop(key, None)
    self.facts[key] = value
    self.save()

  def forget(self, key):
    found = self.facts.pop(key, None) is not None
    if found:
      self.save()
    return found

  def items(self):
    return list(self.facts.items())

  def __len__(self):
    return len(self.facts)
