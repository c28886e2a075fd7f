import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from filelock import FileLock

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(os.environ.get("SHELLMATE_HOME", Path.home() / ".shellmate"))
SETTINGS_FILE = CONFIG_PATH / "settings.json"
MEMORY_FILE = CONFIG_PATH / "memory.json"
SESSIONS_DIR = CONFIG_PATH / "sessions"
LOG_DIR = CONFIG_PATH / "logs"
KEY_FILE = Path.home() / ".shellmate_key"

API_KEY_ENV = "SHELLMATE_API_KEY"
DEFAULT_API_URL = "https://api.minimax.io/v1/chat/completions"
DEFAULT_MODEL = "MiniMax-Text-01"
MAX_CONTEXT_TOKENS = 128000
COST_PER_1K_TOKENS = 0.0001
REQUEST_TIMEOUT = 180

DEFAULTS = {
  "api_url": DEFAULT_API_URL,
  "model": DEFAULT_MODEL,
  "max_tokens": 4096,
  "temperature": 0.7,
  "mode": "auto",
  "read_max_lines": 200,
  "find_max_results": 30,
  "find_max_depth": 6,
  "grep_max_matches": 25,
  "tree_max_depth": 3,
  "tree_max_entries": 15,
  "fetch_max_chars": 8000,
  "shell_timeout": 300,
  "fetch_timeout": 30,
  "undo_capacity": 20,
}


@dataclass
class Limits:
  """Truncation caps and timeouts applied by the local tools."""
  read_max_lines: int = 200
  find_max_results: int = 30
  find_max_depth: int = 6
  grep_max_matches: int = 25
  tree_max_depth: int = 3
  tree_max_entries: int = 15
  fetch_max_chars: int = 8000
  shell_timeout: int = 300
  fetch_timeout: int = 30
  search_timeout: int = 10

  @classmethod
  def from_settings(cls, settings):
    values = {}
    for f in fields(cls):
      if f.name in settings:
        try:
          values[f.name] = int(settings[f.name])
        except (TypeError, ValueError):
          logger.warning("ignoring non-integer setting %s=%r", f.name, settings[f.name])
    return cls(**values)


def load_settings(path=None):
  """Read settings.json merged over DEFAULTS; env vars override endpoint and model."""
  path = Path(path or SETTINGS_FILE)
  data = dict(DEFAULTS)
  if path.exists():
    try:
      with FileLock(str(path) + ".lock"):
        with open(path, "r") as f:
          stored = json.load(f)
      if isinstance(stored, dict):
        data.update(stored)
    except (OSError, ValueError) as e:
      logger.warning("could not read settings %s: %s", path, e)
  if os.environ.get("SHELLMATE_API_URL"):
    data["api_url"] = os.environ["SHELLMATE_API_URL"]
  if os.environ.get("SHELLMATE_MODEL"):
    data["model"] = os.environ["SHELLMATE_MODEL"]
  return data


def save_settings(settings, path=None):
  path = Path(path or SETTINGS_FILE)
  path.parent.mkdir(parents=True, exist_ok=True)
  with FileLock(str(path) + ".lock"):
    with open(path, "w") as f:
      json.dump(settings, f, indent=2)


def get_api_key(key_file=None):
  key = os.environ.get(API_KEY_ENV, "").strip()
  if key:
    return key
  key_file = Path(key_file or KEY_FILE)
  try:
    return key_file.read_text().strip()
  except OSError:
    return ""


def save_api_key(key, key_file=None):
  key_file = Path(key_file or KEY_FILE)
  key_file.write_text(key)
  os.chmod(key_file, 0o600)
