from shellmate.input_handler import MODE_CYCLE, PromptStyle, read_multiline
from shellmate.permissions import PermissionMode


def reader(*lines):
  it = iter(lines)
  return lambda: next(it)


def test_single_line():
  assert read_multiline(reader("hello")) == "hello"


def test_backslash_continues_input():
  assert read_multiline(reader("first \\", "second\\", "third")) == "first \nsecond\nthird"


def test_mode_cycle_on_first_line():
  assert read_multiline(reader(MODE_CYCLE)) == MODE_CYCLE


def test_prompt_colour_follows_mode():
  assert PromptStyle.for_mode(PermissionMode.BLOCKED).color == "ansired"
  assert PromptStyle.for_mode(PermissionMode.CONFIRM_EACH).color == "ansiyellow"
  assert PromptStyle.for_mode(PermissionMode.UNRESTRICTED).color == "ansigreen"
