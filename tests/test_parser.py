from shellmate.parser import Directive, parse_directives


def test_text_without_markers_is_returned_unchanged():
  text = "Here is a plain answer.\n  With indentation and <b>html</b>."
  visible, directives = parse_directives(text)
  assert visible == text
  assert directives == []


def test_single_directive_is_extracted_and_removed():
  visible, directives = parse_directives("Let me look. <tool>read:main.go</tool> Done.")
  assert directives == [Directive("read", "main.go")]
  assert visible == "Let me look.  Done."
  assert "<tool>" not in visible and "</tool>" not in visible


def test_directives_keep_left_to_right_order():
  text = "<tool>ls:</tool>a<tool>read:x.txt</tool>b<tool>run:make test</tool>"
  visible, directives = parse_directives(text)
  assert [d.name for d in directives] == ["ls", "read", "run"]
  assert directives[2].argument == "make test"
  assert visible == "ab"


def test_argument_splits_on_first_colon_only():
  _, directives = parse_directives("<tool>remember:editor:vim</tool>")
  assert directives == [Directive("remember", "editor:vim")]


def test_missing_separator_gives_empty_argument():
  _, directives = parse_directives("<tool> tree </tool>")
  assert directives == [Directive("tree", "")]


def test_name_and_argument_are_trimmed():
  _, directives = parse_directives("<tool>  grep :  TODO src  </tool>")
  assert directives == [Directive("grep", "TODO src")]


def test_unterminated_marker_leaves_input_untouched():
  text = "Starting <tool>read:file.txt and never closing"
  visible, directives = parse_directives(text)
  assert visible == text
  assert directives == []


def test_unterminated_marker_after_complete_one_stays_visible():
  text = "<tool>ls:.</tool> then <tool>read:a"
  visible, directives = parse_directives(text)
  assert directives == [Directive("ls", ".")]
  assert visible == " then <tool>read:a"


def test_multiline_write_argument_is_preserved():
  text = "<tool>write:hello.py|||print('hi')\nprint('bye')</tool>"
  _, directives = parse_directives(text)
  assert directives[0].argument == "hello.py|||print('hi')\nprint('bye')"


def test_parse_is_repeatable():
  text = "a <tool>read:x</tool> b"
  assert parse_directives(text) == parse_directives(text)
