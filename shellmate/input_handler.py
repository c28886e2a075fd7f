"""
Line input for the chat loop.
Handles backslash continuation, persistent history and the Shift+Tab
mode-cycle key.
"""

from dataclasses import dataclass
from html import escape
from pathlib import Path
from typing import Callable, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings

from .permissions import PermissionMode

MODE_CYCLE = "\x00MODE_CYCLE"
CONTINUATION = "\\"


@dataclass
class PromptStyle:
    """Prompt glyph colour per approval mode."""
    symbol: str
    color: str

    @classmethod
    def for_mode(cls, mode: PermissionMode) -> "PromptStyle":
        colors = {
            PermissionMode.UNRESTRICTED: "ansigreen",
            PermissionMode.CONFIRM_EACH: "ansiyellow",
            PermissionMode.BLOCKED: "ansired",
        }
        return cls(symbol="❯", color=colors.get(mode, "ansigreen"))

    def message(self) -> HTML:
        return HTML(f"<{self.color}>{self.symbol}</{self.color}> ")


def read_multiline(read_line: Callable[[], str]) -> str:
    """
    Keep reading while a line ends with a backslash.

    The trailing backslash is dropped and the lines are joined with
    newlines. A MODE_CYCLE sentinel on the first line is returned as-is.
    """
    lines: List[str] = []
    while True:
        line = read_line()
        if line == MODE_CYCLE and not lines:
            return MODE_CYCLE
        if line.endswith(CONTINUATION):
            lines.append(line[:-1])
            continue
        lines.append(line)
        return "\n".join(lines)


class LineReader:
    """prompt_toolkit session with history and a Shift+Tab binding."""

    def __init__(self, history_file: Optional[Path] = None):
        bindings = KeyBindings()

        @bindings.add("s-tab")
        def _(event):
            event.app.exit(result=MODE_CYCLE)

        if history_file is not None:
            history_file.parent.mkdir(parents=True, exist_ok=True)
            history = FileHistory(str(history_file))
        else:
            history = InMemoryHistory()
        self.session = PromptSession(history=history, key_bindings=bindings)

    def read(self, mode: PermissionMode, placeholder: str = "") -> str:
        style = PromptStyle.for_mode(mode)
        first = [True]

        def read_line() -> str:
            if first[0]:
                first[0] = False
                return self.session.prompt(
                    style.message(),
                    placeholder=HTML(f"<ansibrightblack>{escape(placeholder)}</ansibrightblack>") if placeholder else None,
                )
            return self.session.prompt(HTML("<ansibrightblack>.</ansibrightblack> "))

        return read_multiline(read_line)
