import os

from shellmate.paths import detect_project, format_size, resolve_path


def test_home_shorthand_matches_explicit_home():
  home = os.path.expanduser("~")
  assert resolve_path("~/x", "/any/cwd") == resolve_path(home + "/x", "/any/cwd")


def test_relative_path_joins_cwd():
  assert resolve_path("a/b", "/cwd") == os.path.normpath("/cwd/a/b")


def test_absolute_clean_path_is_unchanged():
  assert resolve_path("/abs/a", "/cwd") == "/abs/a"
  assert resolve_path(resolve_path("/abs/a", "/cwd"), "/elsewhere") == "/abs/a"


def test_dot_segments_are_collapsed():
  assert resolve_path("./src/../lib//x.py", "/cwd") == "/cwd/lib/x.py"
  assert resolve_path("..", "/cwd/sub") == "/cwd"


def test_detect_project_uses_marker_order(tmp_path):
  assert detect_project(str(tmp_path)) == ""
  (tmp_path / ".git").mkdir()
  assert detect_project(str(tmp_path)) == "git"
  (tmp_path / "Makefile").write_text("all:\n")
  assert detect_project(str(tmp_path)) == "make"
  (tmp_path / "go.mod").write_text("module x\n")
  assert detect_project(str(tmp_path)) == "go"


def test_format_size():
  assert format_size(512) == "512B"
  assert format_size(2048) == "2.0KB"
  assert format_size(5 * 1024 * 1024) == "5.0MB"
