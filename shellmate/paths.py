import os

PROJECT_MARKERS = [
  ("package.json", "nodejs"),
  ("go.mod", "go"),
  ("Cargo.toml", "rust"),
  ("requirements.txt", "python"),
  ("pyproject.toml", "python"),
  ("pom.xml", "java"),
  ("composer.json", "php"),
  ("Gemfile", "ruby"),
  ("pubspec.yaml", "flutter"),
  ("CMakeLists.txt", "cpp"),
  ("Makefile", "make"),
  ("docker-compose.yml", "docker"),
]


def resolve_path(raw, cwd):
  """Turn a user or model supplied path into an absolute, normalized path.

  `~/x` expands against the home directory, relative paths join `cwd`.
  Nothing here touches the filesystem.
  """
  path = raw
  if path == "~" or path.startswith("~/"):
    path = os.path.join(os.path.expanduser("~"), path[2:])
  if not os.path.isabs(path):
    path = os.path.join(cwd, path)
  return os.path.normpath(path)


def detect_project(cwd):
  """Guess the project kind from marker files; first match wins."""
  for marker, kind in PROJECT_MARKERS:
    if os.path.exists(os.path.join(cwd, marker)):
      return kind
  if os.path.exists(os.path.join(cwd, ".git")):
    return "git"
  return ""


def format_size(size):
  unit = 1024
  if size < unit:
    return f"{size}B"
  div, exp = unit, 0
  n = size // unit
  while n >= unit:
    div *= unit
    exp += 1
    n //= unit
  return f"{size / div:.1f}{'KMGTPE'[exp]}B"


def truncate(text, limit):
  if len(text) <= limit:
    return text
  return text[:limit] + "..."
