import json
import logging
from typing import NamedTuple

import requests
from rich.console import Console

from . import config
from .errors import ApiStatusError, CompletionError, MalformedStreamError

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class StreamResult(NamedTuple):
  text: str
  total_tokens: int


class ThinkingIndicator:
  """Spinner shown while a request is outstanding and nothing has streamed yet."""

  def __init__(self, console, message="Thinking..."):
    self._status = console.status(f"[dim]{message}[/dim]", spinner="dots")
    self.running = False

  def start(self):
    self._status.start()
    self.running = True

  def stop(self):
    if self.running:
      self._status.stop()
      self.running = False

  def __enter__(self):
    self.start()
    return self

  def __exit__(self, *exc):
    self.stop()


def iter_sse_data(lines):
  """Yield decoded JSON payloads from `data:` lines until the [DONE] sentinel."""
  for raw in lines:
    if raw is None:
      continue
    line = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
    line = line.strip()
    if not line or line.startswith(":") or not line.startswith("data:"):
      continue
    data = line[len("data:"):].strip()
    if data == DONE_SENTINEL:
      return
    try:
      yield json.loads(data)
    except ValueError:
      raise MalformedStreamError(data)


def read_chunk(chunk):
  """Return `(content, total_tokens)` from one decoded chunk.

  Anything that is not shaped like a chat completion chunk raises
  MalformedStreamError.
  """
  malformed = MalformedStreamError(json.dumps(chunk))
  if not isinstance(chunk, dict):
    raise malformed
  choices = chunk.get("choices") or []
  usage = chunk.get("usage") or {}
  if not isinstance(choices, list) or not isinstance(usage, dict):
    raise malformed
  content = ""
  if choices:
    if not isinstance(choices[0], dict):
      raise malformed
    delta = choices[0].get("delta") or {}
    if not isinstance(delta, dict):
      raise malformed
    content = delta.get("content") or ""
    if not isinstance(content, str):
      raise malformed
  tokens = usage.get("total_tokens") or 0
  return content, tokens if isinstance(tokens, int) else 0


class CompletionStreamClient:
  """OpenAI-style chat completions over a server-sent event stream."""

  def __init__(self, api_key, api_url=config.DEFAULT_API_URL, model=config.DEFAULT_MODEL,
               max_tokens=4096, temperature=0.7, timeout=config.REQUEST_TIMEOUT, console=None):
    self.api_key = api_key
    self.api_url = api_url
    self.model = model
    self.max_tokens = max_tokens
    self.temperature = temperature
    self.timeout = timeout
    self.console = console or Console()

  @classmethod
  def from_settings(cls, api_key, settings, console=None):
    return cls(
      api_key,
      api_url=settings.get("api_url", config.DEFAULT_API_URL),
      model=settings.get("model", config.DEFAULT_MODEL),
      max_tokens=int(settings.get("max_tokens", 4096)),
      temperature=float(settings.get("temperature", 0.7)),
      console=console,
    )

  def build_payload(self, messages):
    return {
      "model": self.model,
      "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
      "max_tokens": self.max_tokens,
      "stream": True,
      "temperature": self.temperature,
    }

  def headers(self):
    return {
      "Content-Type": "application/json",
      "Authorization": f"Bearer {self.api_key}",
      "Accept": "text/event-stream",
    }

  def stream(self, messages, on_chunk=None):
    """Send one completion request and accumulate the streamed reply.

    `on_chunk` receives each text fragment as it arrives. Raises
    CompletionError (or a subclass) on transport, status or decoding
    failures; the thinking indicator is always stopped first.
    """
    payload = self.build_payload(messages)
    logger.info("POST %s model=%s messages=%d", self.api_url, self.model, len(messages))
    indicator = ThinkingIndicator(self.console)
    parts = []
    total_tokens = 0
    indicator.start()
    try:
      with requests.post(self.api_url, headers=self.headers(), json=payload,
                         stream=True, timeout=self.timeout) as response:
        if response.status_code != 200:
          raise ApiStatusError(response.status_code, response.text)
        for chunk in iter_sse_data(response.iter_lines()):
          content, tokens = read_chunk(chunk)
          if content:
            indicator.stop()
            parts.append(content)
            if on_chunk is not None:
              on_chunk(content)
          if tokens:
            total_tokens = tokens
    except requests.RequestException as e:
      logger.warning("completion request failed: %s", e)
      raise CompletionError(f"Request failed: {e}") from e
    finally:
      indicator.stop()
    text = "".join(parts)
    logger.info("completion received chars=%d tokens=%d", len(text), total_tokens)
    return StreamResult(text, total_tokens)
