import io
import json
from unittest import mock

import pytest
import requests
from rich.console import Console

from shellmate.client import CompletionStreamClient, ThinkingIndicator, iter_sse_data, read_chunk
from shellmate.errors import ApiStatusError, CompletionError, MalformedStreamError
from shellmate.session import ConversationSession


def sse(*payloads):
  lines = []
  for p in payloads:
    lines.append(b"data: " + (p if isinstance(p, bytes) else json.dumps(p).encode()))
    lines.append(b"")
  return lines


def delta(text):
  return {"choices": [{"delta": {"content": text}}]}


def fake_response(lines, status=200, text=""):
  response = mock.MagicMock()
  response.status_code = status
  response.text = text
  response.iter_lines.return_value = iter(lines)
  response.__enter__.return_value = response
  response.__exit__.return_value = False
  return response


@pytest.fixture
def client():
  return CompletionStreamClient("sk-test", api_url="https://llm.example/v1/chat", model="m",
                                console=Console(file=io.StringIO()))


def test_iter_sse_data_skips_comments_and_stops_at_done():
  lines = [b": keep-alive", b"", b"event: ping", b'data: {"a": 1}', b"data: [DONE]", b'data: {"a": 2}']
  assert list(iter_sse_data(lines)) == [{"a": 1}]


def test_iter_sse_data_rejects_bad_json():
  with pytest.raises(MalformedStreamError):
    list(iter_sse_data([b"data: {not json"]))


def test_stream_accumulates_chunks_and_usage(client):
  lines = sse(delta("Hel"), delta("lo"), {"choices": [], "usage": {"total_tokens": 42}}, b"[DONE]")
  chunks = []
  with mock.patch("shellmate.client.requests.post", return_value=fake_response(lines)) as post:
    result = client.stream([{"role": "user", "content": "hi"}], on_chunk=chunks.append)
  assert result.text == "Hello"
  assert result.total_tokens == 42
  assert chunks == ["Hel", "lo"]
  kwargs = post.call_args.kwargs
  assert kwargs["stream"] is True
  assert kwargs["json"]["stream"] is True
  assert kwargs["json"]["model"] == "m"
  assert kwargs["headers"]["Authorization"] == "Bearer sk-test"


def test_stream_without_content(client):
  with mock.patch("shellmate.client.requests.post", return_value=fake_response(sse(b"[DONE]"))):
    assert client.stream([]).text == ""


def test_non_200_raises_status_error(client):
  response = fake_response([], status=401, text="bad key")
  with mock.patch("shellmate.client.requests.post", return_value=response):
    with pytest.raises(ApiStatusError) as excinfo:
      client.stream([])
  assert excinfo.value.status == 401
  assert "bad key" in str(excinfo.value)


def test_transport_error_is_wrapped(client):
  with mock.patch("shellmate.client.requests.post", side_effect=requests.ConnectionError("reset")):
    with pytest.raises(CompletionError, match="reset"):
      client.stream([])


def test_malformed_chunk_is_a_completion_error(client):
  with mock.patch("shellmate.client.requests.post", return_value=fake_response(sse(delta("a"), b"{oops"))):
    with pytest.raises(CompletionError):
      client.stream([])


def test_indicator_stopped_on_failure(client):
  indicator = mock.Mock()
  with mock.patch("shellmate.client.ThinkingIndicator", return_value=indicator):
    with mock.patch("shellmate.client.requests.post", side_effect=requests.Timeout("slow")):
      with pytest.raises(CompletionError):
        client.stream([])
  indicator.start.assert_called_once()
  indicator.stop.assert_called()


def test_indicator_stop_is_idempotent():
  indicator = ThinkingIndicator(Console(file=io.StringIO()))
  with indicator:
    assert indicator.running
  indicator.stop()
  assert not indicator.running


def test_from_settings_reads_endpoint_and_model():
  settings = {"api_url": "https://other/v1", "model": "x", "max_tokens": "100", "temperature": "0.2"}
  c = CompletionStreamClient.from_settings("key", settings)
  assert (c.api_url, c.model, c.max_tokens, c.temperature) == ("https://other/v1", "x", 100, 0.2)


@pytest.mark.parametrize("chunk", [
  "ping",
  None,
  [1, 2],
  {"choices": ["text"]},
  {"choices": [{"delta": "text"}]},
  {"choices": [{"delta": {"content": 5}}]},
  {"choices": {"delta": {}}},
  {"choices": [], "usage": "many"},
])
def test_read_chunk_rejects_unexpected_shapes(chunk):
  with pytest.raises(MalformedStreamError):
    read_chunk(chunk)


def test_read_chunk_accepts_role_only_and_usage_chunks():
  assert read_chunk({"choices": [{"delta": {"role": "assistant"}}]}) == ("", 0)
  assert read_chunk({"choices": [{"delta": {"content": "hi"}}], "usage": {"total_tokens": 7}}) == ("hi", 7)


def test_non_object_chunk_is_a_completion_error(client):
  with mock.patch("shellmate.client.requests.post", return_value=fake_response(sse(delta("a"), "ping"))):
    with pytest.raises(MalformedStreamError):
      client.stream([])


def test_non_object_chunk_rolls_back_session_turn(ctx, executor, client):
  session = ConversationSession(ctx, client, executor)
  before = [dict(m) for m in session.history]
  with mock.patch("shellmate.client.requests.post", return_value=fake_response(sse(delta("a"), "ping"))):
    with pytest.raises(CompletionError):
      session.send("hi")
  assert session.history == before
