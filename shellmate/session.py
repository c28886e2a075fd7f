import logging
import os
import re
import time
import uuid
from typing import List, NamedTuple, Optional

from . import config, storage
from .errors import CompletionError
from .parser import parse_directives
from .permissions import PermissionMode
from .prompt import build_system_prompt

logger = logging.getLogger(__name__)

SUMMARY_INSTRUCTION = "Explain the results briefly."
MENTION_RE = re.compile(r"@([\w./\-]+)")
MENTION_MAX_LINES = 100


class TurnResult(NamedTuple):
  reply: str
  visible: str
  results: List[str]
  summary: Optional[str]


def expand_mentions(ctx, text, max_lines=MENTION_MAX_LINES):
  """Append the contents of every readable `@file` mentioned in `text`."""
  files = []
  for name in MENTION_RE.findall(text):
    full_path = ctx.resolve(name)
    try:
      with open(full_path, "r", encoding="utf-8", errors="replace") as f:
        content = f.read()
    except OSError:
      continue
    lines = content.split("\n")
    if len(lines) > max_lines:
      content = "\n".join(lines[:max_lines]) + f"\n... +{len(lines) - max_lines} lines"
    files.append(f"=== {full_path} ===\n{content}")
    ctx.console.print(f"[dim]  ✓ @{name}[/dim]", markup=True, highlight=False)
  if not files:
    return text
  return text + "\n\n" + "\n\n".join(files)


def results_message(results):
  return "Results:\n" + "\n".join(results) + "\n\n" + SUMMARY_INSTRUCTION


class ConversationSession:
  """Message history plus the send -> stream -> tools -> summary cycle.

  A turn without directives appends one assistant message. A turn with
  directives appends the raw assistant reply, one synthetic user message
  holding every labeled result, and the assistant's summary. If any
  completion request fails the history is rolled back to where the turn
  started and the CompletionError propagates.
  """

  def __init__(self, ctx, client, executor, session_id=None, history=None):
    self.ctx = ctx
    self.client = client
    self.executor = executor
    self.session_id = session_id or uuid.uuid4().hex[:8]
    self.history = list(history or [])
    self.total_tokens = 0
    self.cost = 0.0
    self.created = time.time()
    self.updated = self.created
    self.last_reply = ""
    self.refresh_system_prompt()

  def refresh_system_prompt(self):
    turn = {"role": "system", "content": build_system_prompt(self.ctx)}
    if self.history and self.history[0]["role"] == "system":
      self.history[0] = turn
    else:
      self.history.insert(0, turn)

  def clear(self):
    del self.history[1:]
    self.refresh_system_prompt()

  def _complete(self, on_chunk):
    result = self.client.stream(self.history, on_chunk=on_chunk)
    if result.total_tokens:
      self.total_tokens = result.total_tokens
      self.cost = self.total_tokens / 1000 * config.COST_PER_1K_TOKENS
    return result.text

  def send(self, user_text, on_chunk=None, on_tools=None):
    checkpoint = len(self.history)
    environment = (self.ctx.cwd, self.ctx.gate.mode)
    self.history.append({"role": "user", "content": user_text})
    try:
      reply = self._complete(on_chunk)
      self.last_reply = reply
      visible, directives = parse_directives(reply)
      if not directives:
        self.history.append({"role": "assistant", "content": visible})
        self.updated = time.time()
        return TurnResult(reply, visible, [], None)

      logger.info("turn has %d directive(s): %s", len(directives), ", ".join(d.name for d in directives))
      if on_tools is not None:
        on_tools(directives)
      results = self.executor.execute(directives)
      self.history.append({"role": "assistant", "content": reply})
      self.history.append({"role": "user", "content": results_message(results)})
      if (self.ctx.cwd, self.ctx.gate.mode) != environment:
        self.refresh_system_prompt()
      summary = self._complete(on_chunk)
      self.last_reply = summary
      self.history.append({"role": "assistant", "content": summary})
    except CompletionError:
      logger.warning("rolling back turn, history restored to %d messages", checkpoint)
      del self.history[checkpoint:]
      raise
    self.updated = time.time()
    return TurnResult(reply, visible, results, summary)

  def to_dict(self):
    return {
      "id": self.session_id,
      "workingDirectory": self.ctx.cwd,
      "mode": self.ctx.gate.mode.value,
      "history": [dict(m) for m in self.history],
      "tokenCount": self.total_tokens,
      "costEstimate": self.cost,
      "memoryMap": dict(self.ctx.memory.facts),
      "created": self.created,
      "updated": self.updated,
    }

  @classmethod
  def from_dict(cls, data, ctx, client, executor):
    """Rebuild a saved session; the saved directory is used when it still exists."""
    directory = data.get("workingDirectory")
    if directory and os.path.isdir(directory) and directory != ctx.cwd:
      ctx.change_directory(directory)
    ctx.gate.mode = PermissionMode.from_value(data.get("mode", "auto"))
    if data.get("memoryMap"):
      ctx.memory.facts = dict(data["memoryMap"])
    session = cls(ctx, client, executor, session_id=data.get("id"), history=data.get("history", []))
    session.total_tokens = data.get("tokenCount", 0)
    session.cost = data.get("costEstimate", 0.0)
    session.created = data.get("created", session.created)
    session.updated = data.get("updated", session.updated)
    return session

  def save(self, sessions_dir=None):
    self.updated = time.time()
    return storage.save_session(self.to_dict(), sessions_dir)
