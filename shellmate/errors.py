"""Exception hierarchy.

Tool handlers never raise these past the executor; they are for the
transport, argument parsing and startup layers.
"""


class ShellmateError(Exception):
  """Base exception for shellmate."""


class ConfigError(ShellmateError):
  """Configuration is unusable (for example no API key)."""


class ArgumentError(ShellmateError):
  """A tool directive carried an argument its operation cannot parse."""

  def __init__(self, operation, usage):
    self.operation = operation
    self.usage = usage
    super().__init__(f"format {usage}")


class CompletionError(ShellmateError):
  """A completion request failed before a full turn was received."""


class ApiStatusError(CompletionError):
  """The completion endpoint answered with a non-200 status."""

  def __init__(self, status, body):
    self.status = status
    self.body = body
    super().__init__(f"API error ({status}): {body}")


class MalformedStreamError(CompletionError):
  """A server-sent event carried data that is not valid JSON."""

  def __init__(self, payload):
    self.payload = payload
    super().__init__(f"Malformed stream chunk: {payload[:120]}")
