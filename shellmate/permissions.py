"""Approval modes and the gate that applies them to tool calls."""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class PermissionMode(Enum):
  UNRESTRICTED = "auto"
  CONFIRM_EACH = "ask"
  BLOCKED = "manual"

  @classmethod
  def from_value(cls, value):
    """Accept the persisted string form; unknown values fall back to auto."""
    for mode in cls:
      if mode.value == value or mode.name.lower() == str(value).lower():
        return mode
    return cls.UNRESTRICTED


class Decision(Enum):
  PROCEED = "proceed"
  PROMPT = "prompt"
  DENY = "deny"


CYCLE_ORDER = [PermissionMode.UNRESTRICTED, PermissionMode.CONFIRM_EACH, PermissionMode.BLOCKED]

MODE_LABELS = {
  PermissionMode.UNRESTRICTED: "[green]AUTO[/green]",
  PermissionMode.CONFIRM_EACH: "[yellow]ASK[/yellow]",
  PermissionMode.BLOCKED: "[red]MANUAL[/red]",
}

MODE_HINTS = {
  PermissionMode.UNRESTRICTED: "tools run without asking",
  PermissionMode.CONFIRM_EACH: "writes and commands ask first",
  PermissionMode.BLOCKED: "read-only, writes and commands are blocked",
}


def cycle_mode(mode):
  """AUTO -> ASK -> MANUAL -> AUTO"""
  index = CYCLE_ORDER.index(mode)
  return CYCLE_ORDER[(index + 1) % len(CYCLE_ORDER)]


def get_mode_indicator(mode):
  return MODE_LABELS[mode]


def blocked_result(name, description):
  return f"[blocked] {name} refused in manual mode: {description}"


class PermissionGate:
  """Holds the session's approval mode and classifies each tool call.

  Read-only operations always proceed. Mutating or process-spawning ones
  proceed in auto mode, need a confirmation in ask mode and are denied in
  manual mode.
  """

  def __init__(self, mode=PermissionMode.UNRESTRICTED):
    self.mode = mode

  def authorize(self, mutating, description=""):
    if not mutating or self.mode is PermissionMode.UNRESTRICTED:
      decision = Decision.PROCEED
    elif self.mode is PermissionMode.CONFIRM_EACH:
      decision = Decision.PROMPT
    else:
      decision = Decision.DENY
    logger.debug("gate mode=%s mutating=%s -> %s (%s)", self.mode.value, mutating, decision.value, description)
    return decision

  def cycle(self):
    self.mode = cycle_mode(self.mode)
    logger.info("permission mode changed to %s", self.mode.value)
    return self.mode
