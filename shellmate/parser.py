"""Extraction of `<tool>name:argument</tool>` directives from model output."""

from typing import NamedTuple

OPEN_MARKER = "<tool>"
CLOSE_MARKER = "</tool>"
SEPARATOR = ":"


class Directive(NamedTuple):
  name: str
  argument: str


def split_directive(body):
  name, sep, argument = body.partition(SEPARATOR)
  return Directive(name.strip(), argument.strip() if sep else "")


def parse_directives(text):
  """Return `(visible_text, directives)` for one model turn.

  Directives come back in the order they appear. An opening marker without
  a matching close ends the scan and stays in the visible text as-is.
  """
  directives = []
  visible = []
  pos = 0
  while True:
    start = text.find(OPEN_MARKER, pos)
    if start == -1:
      break
    end = text.find(CLOSE_MARKER, start + len(OPEN_MARKER))
    if end == -1:
      break
    visible.append(text[pos:start])
    directives.append(split_directive(text[start + len(OPEN_MARKER):end]))
    pos = end + len(CLOSE_MARKER)
  visible.append(text[pos:])
  return "".join(visible), directives
