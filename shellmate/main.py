#!/usr/bin/env python3

import atexit
import logging
import os
import signal
import subprocess
import sys
import time
from logging.handlers import RotatingFileHandler

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.text import Text

from . import __version__, config, storage
from .client import CompletionStreamClient
from .context import SessionContext
from .errors import ApiStatusError, CompletionError, ConfigError
from .executor import ToolExecutor
from .input_handler import MODE_CYCLE, LineReader
from .memory import MemoryStore
from .permissions import MODE_HINTS, PermissionGate, PermissionMode, get_mode_indicator
from .session import ConversationSession, expand_mentions
from .tools import default_registry
from .undo import UndoLedger

logger = logging.getLogger("shellmate")
console = Console()

CURRENT_SESSION = None

USAGE = """Usage: shellmate [command | message...]

Commands:
  (none)            start an interactive chat
  <message...>      send one message and exit
  resume            continue the latest session for this directory
  sessions          list saved sessions
  export [file]     export the latest session for this directory as markdown
  memory            show remembered facts
  version           show version
  help              show this help

Options:
  --debug           log to the terminal as well as ~/.shellmate/logs
"""

HELP_TEXT = """/read <f>      Read file
/ls [d]        List directory
/tree [d]      Show structure
/find <n>      Find files
/grep <p> [d]  Search in files
/run <c>       Run command
/git <c>       Git command
/cd <d>        Change directory
/pwd           Current directory
/python <c>    Run Python
/node <c>      Run JavaScript
/search <q>    Web search
/img <f>       Inspect image
/mode          Cycle mode (also Shift+Tab)
/undo          Undo last file change
/save          Save session
/resume        Load a saved session
/sessions      List sessions
/export [f]    Export chat as markdown
/copy          Copy last response
/cost          Show API cost
/context       Context usage
/memory        Show memory
/remember k=v  Remember fact
/forget <k>    Forget fact
/settings      Edit settings
/clear         Clear history
exit           Quit"""

TOOL_COMMANDS = {
  "/read": "read", "/cat": "read",
  "/ls": "ls", "/dir": "ls",
  "/tree": "tree",
  "/find": "find",
  "/grep": "grep",
  "/run": "run", "/exec": "run", "/$": "run",
  "/git": "git",
  "/cd": "cd",
  "/python": "python",
  "/node": "node",
  "/search": "search",
  "/img": "image",
}

HINTS = [
  "What's in this folder?",
  "Read and explain the README",
  "Find all TODO comments",
  "Create a Python hello world",
  "Search how to parse JSON in Go",
]

SETTINGS_OPTIONS = [
  ("Endpoint", "api_url"),
  ("Model", "model"),
  ("Max Tokens", "max_tokens"),
  ("Temperature", "temperature"),
  ("Read line cap", "read_max_lines"),
  ("Find result cap", "find_max_results"),
  ("Grep match cap", "grep_max_matches"),
  ("Fetch char cap", "fetch_max_chars"),
  ("Shell timeout (s)", "shell_timeout"),
]


def setup_logging(debug=False):
  root = logging.getLogger()
  root.setLevel(logging.DEBUG if debug else logging.INFO)
  root.handlers.clear()
  try:
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
      config.LOG_DIR / "shellmate.log", maxBytes=2_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(file_handler)
  except OSError as e:
    console.print(f"[dim]Logging to file disabled: {escape(str(e))}[/dim]")
  if debug:
    root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def persist_session_on_exit():
  if CURRENT_SESSION is None:
    return
  try:
    CURRENT_SESSION.save()
    CURRENT_SESSION.ctx.memory.save()
  except OSError:
    logger.exception("could not persist session on exit")


def handle_termination(signum, frame):
  persist_session_on_exit()
  sys.exit(0)


# ==================== SETUP ====================

def obtain_api_key():
  key = config.get_api_key()
  if key:
    return key
  console.print(Panel("[bold cyan]shellmate setup[/bold cyan]\nAn API key for the completion endpoint is required.",
                      border_style="cyan"))
  key = Prompt.ask("Enter API Key", password=True, default="", show_default=False).strip()
  if not key:
    raise ConfigError("No API key provided")
  config.save_api_key(key)
  console.print("[green]✓ Saved[/green]")
  return key


def build_session(api_key, settings, cwd=None):
  ctx = SessionContext(
    cwd=cwd or os.getcwd(),
    gate=PermissionGate(PermissionMode.from_value(settings.get("mode", "auto"))),
    undo=UndoLedger(int(settings.get("undo_capacity", 20))),
    memory=MemoryStore.load(),
    limits=config.Limits.from_settings(settings),
    console=console,
  )
  client = CompletionStreamClient.from_settings(api_key, settings, console=console)
  executor = ToolExecutor(ctx, default_registry())
  return ConversationSession(ctx, client, executor)


# ==================== DISPLAY ====================

def banner(session):
  ctx = session.ctx
  cwd = ctx.cwd.replace(os.path.expanduser("~"), "~")
  body = Text.assemble(
    ("shellmate", "bold cyan"), (f" v{__version__}\n", "dim"),
    (f"\nFolder: {cwd}", "cyan"),
    (f"\nProject: {ctx.project_kind or '-'}", "cyan"),
    (f"\nModel: {session.client.model}\n", "cyan"),
    ("\nENTER send • \\ newline • @file include • /help commands • Ctrl+C exit", "dim"),
  )
  console.print(Panel(body, box=box.ROUNDED, border_style="cyan", padding=(1, 2)))
  status_bar(session)


def status_bar(session):
  mode = session.ctx.gate.mode
  console.print(f"{get_mode_indicator(mode)} [dim]{MODE_HINTS[mode]} • tokens {session.total_tokens:,}[/dim]")


def print_chunk(chunk):
  console.print(chunk, end="", style="green", markup=False, highlight=False)


def show_tool_header(directives):
  console.print()
  console.print(f"[cyan]─── Executing {len(directives)} tool(s) ───[/cyan]")


def show_api_error(error):
  title = "API Error" if isinstance(error, ApiStatusError) else "Connection Error"
  console.print(Panel(Text(str(error)), title=f"[red]{title}[/red]", border_style="red"))


def send_message(session, text):
  text = expand_mentions(session.ctx, text)
  try:
    session.send(text, on_chunk=print_chunk, on_tools=show_tool_header)
  except CompletionError as e:
    console.print()
    show_api_error(e)
    return False
  console.print("\n")
  return True


# ==================== SESSIONS ====================

def print_sessions(sessions):
  if not sessions:
    console.print("No sessions found")
    return
  console.print("[cyan]Sessions:[/cyan]")
  now = time.time()
  for i, s in enumerate(sessions, 1):
    age = int((now - s.get("updated", now)) // 60)
    history = [m for m in s.get("history", []) if m.get("role") != "system"]
    console.print(
      f"  [green]{i}.[/green] [yellow]{s['id']}[/yellow]  {escape(s.get('workingDirectory', '')[-30:])}"
      f"  {len(history)} msgs  {age}m ago"
    )


def select_session_menu():
  sessions = storage.list_sessions()[:10]
  if not sessions:
    console.print(Panel("No saved sessions found.", style="dim"))
    return None
  print_sessions(sessions)
  console.print("\n[dim]Enter number to resume • q to cancel[/dim]")
  while True:
    choice = console.input("› ").strip()
    if choice.lower() == "q":
      return None
    if choice.isdigit() and 1 <= int(choice) <= len(sessions):
      return sessions[int(choice) - 1]


def resume(session, data):
  restored = ConversationSession.from_dict(data, session.ctx, session.client, session.executor)
  msgs = len([m for m in restored.history if m["role"] != "system"])
  console.print(f"[green]✓ Resumed: {restored.session_id} ({msgs} msgs)[/green]")
  return restored


def export_chat(history, session_id, filename=""):
  if len(history) <= 1:
    console.print("[yellow]No chat to export[/yellow]")
    return
  path = storage.export_markdown(history, filename or storage.default_export_name(session_id))
  console.print(f"[green]✓ Exported: {escape(str(path))}[/green]")


def show_memory(memory):
  if not len(memory):
    console.print("No memories stored")
    return
  console.print(f"[cyan]Memory ({len(memory)} items):[/cyan]")
  for k, v in memory.items():
    console.print(f"  [yellow]{escape(k)}[/yellow]: {escape(v[:50])}")


def copy_to_clipboard(text):
  if sys.platform == "darwin":
    cmd = ["pbcopy"]
  elif sys.platform.startswith("linux"):
    cmd = ["xclip", "-selection", "clipboard"]
  else:
    return "Clipboard not supported on this OS"
  try:
    subprocess.run(cmd, input=text, text=True, check=True)
  except (OSError, subprocess.CalledProcessError) as e:
    return f"Error: {e}"
  return f"✓ Copied to clipboard ({len(text)} chars)"


def interactive_settings_menu(session):
  settings = config.load_settings()
  while True:
    console.print()
    for i, (name, key) in enumerate(SETTINGS_OPTIONS, 1):
      console.print(f"[green]{i}.[/green] {name}: [green]{escape(str(settings.get(key, '')))}[/green]")
    console.print("\n[dim]Enter number to edit • q to exit[/dim]")
    choice = console.input("› ").strip()
    if choice.lower() == "q":
      break
    if not choice.isdigit() or not 1 <= int(choice) <= len(SETTINGS_OPTIONS):
      continue
    name, key = SETTINGS_OPTIONS[int(choice) - 1]
    new_val = console.input(f"New value for {name} (leave blank to cancel): ").strip()
    if not new_val:
      continue
    if isinstance(config.DEFAULTS.get(key), (int, float)):
      try:
        new_val = type(config.DEFAULTS[key])(new_val)
      except ValueError:
        console.print("[red]Not a number.[/red]")
        continue
    settings[key] = new_val
    config.save_settings(settings)
    console.print("[green]Updated.[/green]")

  client = session.client
  client.api_url = settings["api_url"]
  client.model = settings["model"]
  client.max_tokens = int(settings["max_tokens"])
  client.temperature = float(settings["temperature"])
  session.ctx.limits = config.Limits.from_settings(settings)


# ==================== COMMANDS ====================

def cycle_mode(session):
  mode = session.ctx.gate.cycle()
  session.refresh_system_prompt()
  console.print(f"Mode: {get_mode_indicator(mode)} [dim]{MODE_HINTS[mode]}[/dim]\n")


def handle_command(session, text):
  """Run a slash command. Returns the session to continue with."""
  cmd, _, arg = text.partition(" ")
  arg = arg.strip()
  ctx = session.ctx

  if cmd in TOOL_COMMANDS:
    result = session.executor.run(TOOL_COMMANDS[cmd], arg)
    if cmd == "/cd":
      session.refresh_system_prompt()
    console.print(Text(result))
  elif cmd in ("/help", "/?"):
    console.print(HELP_TEXT, markup=False, highlight=False)
  elif cmd == "/mode":
    cycle_mode(session)
  elif cmd == "/undo":
    console.print(Text(ctx.undo.undo_last()))
  elif cmd == "/save":
    session.save()
    console.print(f"[green]✓ Session saved: {session.session_id}[/green]")
  elif cmd == "/resume":
    data = select_session_menu()
    if data:
      session = resume(session, data)
  elif cmd == "/sessions":
    print_sessions(storage.list_sessions())
  elif cmd == "/export":
    export_chat(session.history, session.session_id, arg)
  elif cmd == "/copy":
    console.print(copy_to_clipboard(session.last_reply))
  elif cmd == "/cost":
    console.print(f"Tokens: {session.total_tokens:,} | Cost: ${session.cost:.4f}")
  elif cmd == "/context":
    pct = session.total_tokens / config.MAX_CONTEXT_TOKENS * 100
    console.print(f"Context: {session.total_tokens:,}/{config.MAX_CONTEXT_TOKENS:,} ({pct:.1f}%)")
  elif cmd == "/memory":
    show_memory(ctx.memory)
  elif cmd == "/remember":
    key, sep, value = arg.partition("=")
    if sep and key.strip():
      ctx.memory.remember(key.strip(), value.strip())
      session.refresh_system_prompt()
      console.print(f"Remembered: {escape(key.strip())}")
    else:
      console.print("Usage: /remember key=value")
  elif cmd == "/forget":
    if ctx.memory.forget(arg):
      session.refresh_system_prompt()
    console.print(f"Forgot: {escape(arg)}")
  elif cmd == "/settings":
    interactive_settings_menu(session)
  elif cmd == "/pwd":
    console.print(Text(ctx.cwd))
  elif cmd == "/clear":
    session.clear()
    console.print("Cleared")
  else:
    console.print(f"Unknown: {escape(cmd)}")
  console.print()
  return session


def chat_loop(session, reader):
  global CURRENT_SESSION
  CURRENT_SESSION = session
  banner(session)
  hint_idx = 0
  while True:
    try:
      text = reader.read(session.ctx.gate.mode, HINTS[hint_idx % len(HINTS)])
    except EOFError:
      text = "exit"
    if text == MODE_CYCLE:
      cycle_mode(session)
      continue
    text = text.strip()
    if not text:
      continue
    hint_idx += 1

    if text.lower() in ("exit", "quit"):
      persist_session_on_exit()
      console.print("[cyan]Bye![/cyan]")
      return
    if text.startswith("/"):
      session = handle_command(session, text)
      CURRENT_SESSION = session
      continue
    send_message(session, text)


def run_chat(args, resume_latest=False):
  global CURRENT_SESSION
  try:
    api_key = obtain_api_key()
  except ConfigError as e:
    console.print(f"[red]{escape(str(e))}[/red]")
    sys.exit(1)

  settings = config.load_settings()
  session = build_session(api_key, settings)

  if args:
    CURRENT_SESSION = session
    ok = send_message(session, " ".join(args))
    sys.exit(0 if ok else 1)

  if resume_latest:
    data = storage.latest_session(session.ctx.cwd)
    if data is None:
      console.print("[yellow]No session found for this directory[/yellow]")
    else:
      session = resume(session, data)

  chat_loop(session, LineReader(config.CONFIG_PATH / "input_history"))


def main(argv=None):
  args = list(sys.argv[1:] if argv is None else argv)
  debug = "--debug" in args or os.environ.get("SHELLMATE_DEBUG") == "1"
  args = [a for a in args if a != "--debug"]
  setup_logging(debug)

  signal.signal(signal.SIGTERM, handle_termination)
  if hasattr(signal, "SIGHUP"):
    signal.signal(signal.SIGHUP, handle_termination)
  atexit.register(persist_session_on_exit)

  command = args[0] if args else ""
  try:
    if command in ("version", "-v", "--version"):
      console.print(f"shellmate v{__version__}")
    elif command in ("help", "-h", "--help"):
      console.print(USAGE, markup=False, highlight=False)
    elif command == "sessions":
      print_sessions(storage.list_sessions())
    elif command == "memory":
      show_memory(MemoryStore.load())
    elif command == "export":
      data = storage.latest_session(os.getcwd())
      if data is None:
        console.print("[yellow]No chat to export[/yellow]")
      else:
        export_chat(data["history"], data["id"], args[1] if len(args) > 1 else "")
    elif command == "resume":
      run_chat([], resume_latest=True)
    else:
      run_chat(args)
  except KeyboardInterrupt:
    console.print("\n[yellow]Interrupted[/yellow]")
    persist_session_on_exit()
    sys.exit(0)


if __name__ == "__main__":
  main()
