import io

import pytest
from rich.console import Console

from shellmate.client import StreamResult
from shellmate.config import Limits
from shellmate.context import SessionContext
from shellmate.errors import CompletionError
from shellmate.executor import ToolExecutor
from shellmate.memory import MemoryStore
from shellmate.permissions import PermissionGate, PermissionMode
from shellmate.tools import default_registry
from shellmate.undo import UndoLedger


class FakeClient:
  """Stands in for CompletionStreamClient; replays canned replies."""

  def __init__(self, replies, tokens=0):
    self.replies = list(replies)
    self.tokens = tokens
    self.calls = []
    self.model = "fake-model"

  def stream(self, messages, on_chunk=None):
    self.calls.append([dict(m) for m in messages])
    reply = self.replies.pop(0)
    if isinstance(reply, Exception):
      raise reply
    if on_chunk is not None:
      on_chunk(reply)
    return StreamResult(reply, self.tokens)


@pytest.fixture
def output():
  return io.StringIO()


@pytest.fixture
def ctx(tmp_path, output):
  workdir = tmp_path / "work"
  workdir.mkdir()
  return SessionContext(
    cwd=str(workdir),
    gate=PermissionGate(PermissionMode.UNRESTRICTED),
    undo=UndoLedger(),
    memory=MemoryStore(tmp_path / "memory.json"),
    limits=Limits(),
    console=Console(file=output, width=120),
  )


@pytest.fixture
def registry():
  return default_registry()


@pytest.fixture
def executor(ctx, registry):
  return ToolExecutor(ctx, registry, confirm=lambda description: True)


@pytest.fixture
def fake_client():
  return FakeClient


@pytest.fixture
def transport_error():
  return CompletionError("Request failed: connection reset")
