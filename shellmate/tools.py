import base64
import logging
import os
import re
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional

import requests
from PIL import Image, UnidentifiedImageError
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from .errors import ArgumentError
from .paths import format_size, truncate

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "|||"
IGNORE_DIRS = {".git", "node_modules", "vendor", "__pycache__", ".venv", "venv", "dist", "build", ".next"}
IMAGE_TYPES = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024
SEARCH_URL = "https://api.duckduckgo.com/"


class WriteArgs(NamedTuple):
  path: str
  content: str


class ReplaceArgs(NamedTuple):
  path: str
  old: str
  new: str


class GrepArgs(NamedTuple):
  pattern: str
  path: str


class MemoryArgs(NamedTuple):
  key: str
  value: str


@dataclass
class Operation:
  name: str
  handler: Callable
  mutating: bool = False
  parse: Optional[Callable] = None
  usage: str = ""
  preview: Optional[Callable] = None

  def parse_argument(self, argument):
    if self.parse is None:
      return argument
    return self.parse(self, argument)


class OperationRegistry:
  """Named local operations the model may invoke through directives."""

  def __init__(self):
    self._operations = {}
    self._aliases = {}

  def register(self, operation, aliases=()):
    self._operations[operation.name] = operation
    for alias in aliases:
      self._aliases[alias] = operation.name
    return operation

  def get(self, name):
    name = self._aliases.get(name, name)
    return self._operations.get(name)

  def names(self):
    return list(self._operations)

  def __contains__(self, name):
    return self.get(name) is not None


# ==================== ARGUMENT PARSING ====================

def _parse_write(op, raw):
  parts = raw.split(FIELD_SEPARATOR, 1)
  if len(parts) < 2 or not parts[0].strip():
    raise ArgumentError(op.name, op.usage)
  return WriteArgs(parts[0].strip(), parts[1])


def _parse_replace(op, raw):
  parts = raw.split(FIELD_SEPARATOR, 2)
  if len(parts) < 3 or not parts[0].strip():
    raise ArgumentError(op.name, op.usage)
  return ReplaceArgs(parts[0].strip(), parts[1], parts[2])


def _parse_grep(op, raw):
  pattern, _, path = raw.strip().partition(" ")
  if not pattern:
    raise ArgumentError(op.name, op.usage)
  return GrepArgs(pattern, path.strip())


def _parse_memory(op, raw):
  key, sep, value = raw.partition(":")
  if not sep or not key.strip():
    raise ArgumentError(op.name, op.usage)
  return MemoryArgs(key.strip(), value.strip())


def _require(op, raw):
  if not raw.strip():
    raise ArgumentError(op.name, op.usage)
  return raw.strip()


# ==================== READ-ONLY ====================

def read_file(ctx, path):
  full_path = ctx.resolve(path)
  try:
    with open(full_path, "r", encoding="utf-8", errors="replace") as f:
      content = f.read()
  except OSError as e:
    return f"Error: {e}"

  lines = content.split("\n")
  cap = ctx.limits.read_max_lines
  out = [f"─── {full_path} ({len(lines)} lines) ───"]
  for i, line in enumerate(lines[:cap], 1):
    out.append(f"{i:4d}│ {line}")
  if len(lines) > cap:
    out.append(f"... +{len(lines) - cap} more lines")
  return "\n".join(out)


def list_dir(ctx, path):
  full_path = ctx.resolve(path) if path else ctx.cwd
  try:
    entries = sorted(os.scandir(full_path), key=lambda e: e.name.lower())
  except OSError as e:
    return f"Error: {e}"

  dirs = [e for e in entries if e.is_dir()]
  files = [e for e in entries if not e.is_dir()]
  out = [full_path]
  for e in dirs:
    out.append(f"{e.name}/")
  for e in files:
    try:
      size = format_size(e.stat().st_size)
    except OSError:
      size = "?"
    out.append(f"{e.name:<30} {size}")
  out.append("")
  out.append(f"{len(dirs)} dirs, {len(files)} files")
  return "\n".join(out)


def _walk_tree(path, prefix, out, depth, ctx):
  if depth >= ctx.limits.tree_max_depth:
    return
  try:
    entries = sorted(os.scandir(path), key=lambda e: e.name.lower())
  except OSError:
    return
  shown = [e for e in entries if not e.name.startswith(".") and e.name not in IGNORE_DIRS]
  shown = shown[:ctx.limits.tree_max_entries]
  for i, e in enumerate(shown):
    last = i == len(shown) - 1
    connector = "└── " if last else "├── "
    if e.is_dir():
      out.append(f"{prefix}{connector}{e.name}/")
      _walk_tree(e.path, prefix + ("    " if last else "│   "), out, depth + 1, ctx)
    else:
      out.append(f"{prefix}{connector}{e.name}")


def tree(ctx, path):
  full_path = ctx.resolve(path) if path else ctx.cwd
  if not os.path.isdir(full_path):
    return f"Error: not a directory: {full_path}"
  out = [full_path]
  _walk_tree(full_path, "", out, 0, ctx)
  return "\n".join(out)


def _walk(root, max_depth):
  """os.walk that prunes noise directories and stops at `max_depth`."""
  base_depth = root.rstrip(os.sep).count(os.sep)
  for current, dirs, files in os.walk(root):
    dirs[:] = sorted(d for d in dirs if d not in IGNORE_DIRS)
    if current.count(os.sep) - base_depth >= max_depth:
      dirs[:] = []
    yield current, dirs, sorted(files)


def _cap_lines(lines, cap):
  shown = "\n".join(lines[:cap])
  if len(lines) > cap:
    shown += f"\n+{len(lines) - cap} more"
  return shown


def find_files(ctx, pattern):
  needle = pattern.lower()
  found = []
  for current, dirs, files in _walk(ctx.cwd, ctx.limits.find_max_depth):
    for name in dirs + files:
      if needle in name.lower():
        found.append(os.path.join(current, name))
  if not found:
    return "No files found"
  return f"Found {len(found)}:\n" + _cap_lines(found, ctx.limits.find_max_results)


def _looks_binary(path):
  try:
    with open(path, "rb") as f:
      return b"\0" in f.read(1024)
  except OSError:
    return True


def grep(ctx, args):
  try:
    regex = re.compile(args.pattern, re.IGNORECASE)
  except re.error:
    regex = re.compile(re.escape(args.pattern), re.IGNORECASE)
  target = ctx.resolve(args.path) if args.path else ctx.cwd
  if os.path.isfile(target):
    candidates = [target]
  elif os.path.isdir(target):
    candidates = [os.path.join(current, name) for current, _, files in _walk(target, sys.maxsize) for name in files]
  else:
    return f"Error: no such file or directory: {target}"

  matches = []
  for path in candidates:
    if _looks_binary(path):
      continue
    try:
      with open(path, "r", encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, 1):
          if regex.search(line):
            matches.append(f"{path}:{lineno}:{line.rstrip()}")
    except OSError as e:
      logger.debug("grep skipped %s: %s", path, e)
  if not matches:
    return "No matches"
  return f"Matched {len(matches)}:\n" + _cap_lines(matches, ctx.limits.grep_max_matches)


def change_directory(ctx, path):
  target = ctx.resolve(path) if path else os.path.expanduser("~")
  if not os.path.isdir(target):
    return f"Error: not a directory: {target}"
  ctx.change_directory(target)
  return f"→ {ctx.cwd}"


def fetch(ctx, url):
  if not url.startswith("http"):
    url = "https://" + url
  try:
    resp = requests.get(url, timeout=ctx.limits.fetch_timeout)
  except requests.RequestException as e:
    return f"Error: {e}"
  body = resp.text
  cap = ctx.limits.fetch_max_chars
  status = "" if resp.ok else f" [HTTP {resp.status_code}]"
  if len(body) > cap:
    body = body[:cap] + "\n... (truncated)"
  return f"URL: {url} ({len(resp.content)} bytes){status}\n{body}"


def web_search(ctx, query):
  params = {"q": query, "format": "json", "no_html": 1}
  try:
    resp = requests.get(SEARCH_URL, params=params, timeout=ctx.limits.search_timeout)
    data = resp.json()
  except (requests.RequestException, ValueError) as e:
    return f"Search error: {e}"

  out = [f"Search: {query}"]
  if data.get("Abstract"):
    out.append("")
    out.append(data["Abstract"])
  topics = [t for t in data.get("RelatedTopics", []) if isinstance(t, dict) and t.get("Text")]
  for topic in topics[:5]:
    out.append(f"• {truncate(topic['Text'], 100)}")
  if len(out) == 1:
    out.append("No results")
  return "\n".join(out)


def inspect_image(ctx, path):
  full_path = ctx.resolve(path)
  ext = os.path.splitext(full_path)[1].lower()
  if ext not in IMAGE_TYPES:
    return "Error: Unsupported image format"
  try:
    size = os.path.getsize(full_path)
    if size > MAX_IMAGE_BYTES:
      return "Error: Image too large (max 5MB)"
    with Image.open(full_path) as img:
      fmt, (width, height), mode = img.format, img.size, img.mode
    with open(full_path, "rb") as f:
      b64 = base64.b64encode(f.read()).decode("ascii")
  except (OSError, UnidentifiedImageError) as e:
    return f"Error: {e}"
  mime = Image.MIME.get(fmt, "image/" + ext.lstrip("."))
  return (
    f"Image loaded: {full_path} ({mime}, {width}x{height}, {mode}, {format_size(size)})\n"
    f"Base64: {b64[:50]}...{b64[-20:]}"
  )


def remember(ctx, args):
  ctx.memory.remember(args.key, args.value)
  return f"Remembered: {args.key}"


# ==================== MUTATING / EXECUTING ====================

def write_file(ctx, args):
  full_path = ctx.resolve(args.path)
  ctx.undo.snapshot(full_path)
  try:
    os.makedirs(os.path.dirname(full_path), exist_ok=True)
    with open(full_path, "w", encoding="utf-8") as f:
      f.write(args.content)
  except OSError as e:
    return f"Error: {e}"
  return f"Written: {full_path} ({len(args.content.encode('utf-8'))} bytes)"


def preview_replace(ctx, args):
  """Show the old/new text of a pending replace."""
  full_path = ctx.resolve(args.path)
  body = Text.assemble(
    (f"--- {full_path}\n", "bold"),
    (f"- {truncate(args.old, 80)}\n", "red"),
    (f"+ {truncate(args.new, 80)}", "green"),
  )
  ctx.console.print(Panel(body, title="Replace", border_style="yellow"))


def replace_text(ctx, args):
  full_path = ctx.resolve(args.path)
  try:
    with open(full_path, "r", encoding="utf-8", newline="") as f:
      content = f.read()
  except OSError as e:
    return f"Error: {e}"
  if args.old not in content:
    return "Text not found"
  ctx.undo.snapshot(full_path)
  try:
    with open(full_path, "w", encoding="utf-8", newline="") as f:
      f.write(content.replace(args.old, args.new, 1))
  except OSError as e:
    return f"Error: {e}"
  return f"Replaced in {full_path}"


def append_file(ctx, args):
  full_path = ctx.resolve(args.path)
  ctx.undo.snapshot(full_path)
  try:
    with open(full_path, "a", encoding="utf-8") as f:
      f.write(args.content)
  except OSError as e:
    return f"Error: {e}"
  return f"Appended to {full_path}"


def _execute(ctx, command, shell=True):
  """Run a process in the session directory and return combined output."""
  try:
    result = subprocess.run(
      command, shell=shell, cwd=ctx.cwd,
      stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
      text=True, errors="replace", timeout=ctx.limits.shell_timeout,
    )
  except subprocess.TimeoutExpired:
    return f"Error: Command timed out after {ctx.limits.shell_timeout} seconds."
  except OSError as e:
    return f"Error: {e}"
  output = result.stdout or ""
  if result.returncode != 0:
    output = output.rstrip("\n") + f"\nExit: {result.returncode}"
  return output if output.strip() else "(no output)"


def run_shell(ctx, command):
  ctx.console.print(f"[dim]$ {escape(command)}[/dim]", highlight=False)
  return _execute(ctx, command)


def run_git(ctx, args):
  return _execute(ctx, "git " + (args or "status"))


def _run_script(ctx, interpreter, suffix, code):
  fd, script = tempfile.mkstemp(prefix="shellmate_", suffix=suffix)
  try:
    with os.fdopen(fd, "w", encoding="utf-8") as f:
      f.write(code)
    return _execute(ctx, [interpreter, script], shell=False)
  finally:
    os.remove(script)


def run_python(ctx, code):
  return _run_script(ctx, sys.executable, ".py", code)


def run_node(ctx, code):
  return _run_script(ctx, "node", ".js", code)


def default_registry():
  registry = OperationRegistry()
  r = registry.register
  r(Operation("read", read_file, parse=_require, usage="read:<file>"))
  r(Operation("ls", list_dir, usage="ls:[dir]"), aliases=("list",))
  r(Operation("tree", tree, usage="tree:[dir]"))
  r(Operation("find", find_files, parse=_require, usage="find:<pattern>"))
  r(Operation("grep", grep, parse=_parse_grep, usage="grep:<pattern> [path]"))
  r(Operation("cd", change_directory, usage="cd:[dir]"), aliases=("change-directory",))
  r(Operation("fetch", fetch, parse=_require, usage="fetch:<url>"))
  r(Operation("search", web_search, parse=_require, usage="search:<query>"))
  r(Operation("image", inspect_image, parse=_require, usage="image:<file>"))
  r(Operation("remember", remember, parse=_parse_memory, usage="remember:<key>:<value>"))
  r(Operation("write", write_file, mutating=True, parse=_parse_write, usage="write:<path>|||<content>"))
  r(Operation("replace", replace_text, mutating=True, parse=_parse_replace,
              usage="replace:<path>|||<old>|||<new>", preview=preview_replace))
  r(Operation("append", append_file, mutating=True, parse=_parse_write, usage="append:<path>|||<content>"))
  r(Operation("run", run_shell, mutating=True, parse=_require, usage="run:<command>"))
  r(Operation("git", run_git, mutating=True, usage="git:[subcommand]"))
  r(Operation("python", run_python, mutating=True, parse=_require, usage="python:<code>"))
  r(Operation("node", run_node, mutating=True, parse=_require, usage="node:<code>"))
  return registry
