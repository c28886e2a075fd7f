"""Session files under ~/.shellmate/sessions and markdown export."""

import json
import logging
import time
from pathlib import Path

from filelock import FileLock

from . import config

logger = logging.getLogger(__name__)


def _sessions_dir(sessions_dir):
  return Path(sessions_dir or config.SESSIONS_DIR)


def save_session(data, sessions_dir=None):
  directory = _sessions_dir(sessions_dir)
  directory.mkdir(parents=True, exist_ok=True)
  session_file = directory / f"{data['id']}.json"
  with FileLock(str(session_file) + ".lock"):
    with open(session_file, "w") as f:
      json.dump(data, f, indent=2)
  logger.debug("saved session %s (%d messages)", data["id"], len(data.get("history", [])))
  return session_file


def load_session(session_id, sessions_dir=None):
  session_file = _sessions_dir(sessions_dir) / f"{session_id}.json"
  with FileLock(str(session_file) + ".lock"):
    with open(session_file, "r") as f:
      return json.load(f)


def list_sessions(sessions_dir=None):
  """All readable sessions, most recently updated first."""
  directory = _sessions_dir(sessions_dir)
  if not directory.exists():
    return []
  sessions = []
  for file in directory.glob("*.json"):
    try:
      sessions.append(load_session(file.stem, directory))
    except (OSError, ValueError) as e:
      logger.warning("skipping unreadable session %s: %s", file, e)
  sessions.sort(key=lambda s: s.get("updated", 0), reverse=True)
  return sessions


def latest_session(cwd, sessions_dir=None):
  for s in list_sessions(sessions_dir):
    if s.get("workingDirectory") == cwd:
      return s
  return None


def export_markdown(history, path):
  """Write the user and assistant turns of `history` as a markdown transcript."""
  out = []
  for m in history:
    if m["role"] == "system":
      continue
    out.append(f"## {m['role'].capitalize()}\n{m['content']}\n")
  Path(path).write_text("\n".join(out))
  return path


def default_export_name(session_id):
  return f"chat_{session_id}_{time.strftime('%Y%m%d_%H%M%S')}.md"
