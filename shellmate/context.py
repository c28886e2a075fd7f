import os
from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console

from .config import Limits
from .memory import MemoryStore
from .paths import detect_project, resolve_path
from .permissions import PermissionGate
from .undo import UndoLedger


@dataclass
class SessionContext:
  """Mutable state shared by the tools of one chat session.

  The working directory lives here rather than in the process so that
  shell commands and path resolution never depend on `os.chdir`.
  """
  cwd: str
  gate: PermissionGate = field(default_factory=PermissionGate)
  undo: UndoLedger = field(default_factory=UndoLedger)
  memory: MemoryStore = field(default_factory=MemoryStore)
  limits: Limits = field(default_factory=Limits)
  console: Console = field(default_factory=Console)
  project_kind: Optional[str] = None

  def __post_init__(self):
    self.cwd = os.path.normpath(os.path.abspath(self.cwd))
    if self.project_kind is None:
      self.project_kind = detect_project(self.cwd)

  def resolve(self, raw):
    return resolve_path(raw, self.cwd)

  def change_directory(self, path):
    self.cwd = path
    self.project_kind = detect_project(path)
