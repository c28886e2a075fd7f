import os

from shellmate import config, storage
from shellmate.memory import MemoryStore


def test_save_and_load_session(tmp_path):
  data = {"id": "abc12345", "workingDirectory": "/w", "history": [], "updated": 1}
  path = storage.save_session(data, tmp_path)
  assert path == tmp_path / "abc12345.json"
  assert storage.load_session("abc12345", tmp_path) == data


def test_list_sessions_newest_first_and_skips_corrupt(tmp_path):
  storage.save_session({"id": "old", "updated": 1}, tmp_path)
  storage.save_session({"id": "new", "updated": 5}, tmp_path)
  (tmp_path / "broken.json").write_text("{")
  assert [s["id"] for s in storage.list_sessions(tmp_path)] == ["new", "old"]


def test_list_sessions_missing_directory(tmp_path):
  assert storage.list_sessions(tmp_path / "none") == []


def test_latest_session_matches_directory(tmp_path):
  storage.save_session({"id": "a", "workingDirectory": "/x", "updated": 3}, tmp_path)
  storage.save_session({"id": "b", "workingDirectory": "/y", "updated": 9}, tmp_path)
  assert storage.latest_session("/x", tmp_path)["id"] == "a"
  assert storage.latest_session("/z", tmp_path) is None


def test_export_markdown_skips_system(tmp_path):
  history = [
    {"role": "system", "content": "secret"},
    {"role": "user", "content": "hi"},
    {"role": "assistant", "content": "hello"},
  ]
  out = storage.export_markdown(history, tmp_path / "chat.md")
  text = open(out).read()
  assert "secret" not in text
  assert "## User\nhi" in text
  assert "## Assistant\nhello" in text


def test_default_export_name():
  name = storage.default_export_name("abcd")
  assert name.startswith("chat_abcd_") and name.endswith(".md")


def test_memory_persists_in_insertion_order(tmp_path):
  path = tmp_path / "memory.json"
  store = MemoryStore(path)
  store.remember("b", "2")
  store.remember("a", "1")
  store.remember("b", "3")
  assert MemoryStore.load(path).items() == [("a", "1"), ("b", "3")]
  assert store.forget("a")
  assert not store.forget("a")
  assert len(MemoryStore.load(path)) == 1


def test_memory_load_tolerates_garbage(tmp_path):
  path = tmp_path / "memory.json"
  path.write_text("not json")
  assert len(MemoryStore.load(path)) == 0


def test_settings_merge_over_defaults(tmp_path, monkeypatch):
  monkeypatch.delenv("SHELLMATE_API_URL", raising=False)
  monkeypatch.delenv("SHELLMATE_MODEL", raising=False)
  path = tmp_path / "settings.json"
  config.save_settings({"model": "custom", "read_max_lines": 50}, path)
  settings = config.load_settings(path)
  assert settings["model"] == "custom"
  assert settings["api_url"] == config.DEFAULT_API_URL
  assert config.Limits.from_settings(settings).read_max_lines == 50


def test_settings_env_overrides(tmp_path, monkeypatch):
  monkeypatch.setenv("SHELLMATE_MODEL", "env-model")
  assert config.load_settings(tmp_path / "absent.json")["model"] == "env-model"


def test_limits_ignore_bad_values():
  assert config.Limits.from_settings({"tree_max_depth": "deep"}).tree_max_depth == 3


def test_api_key_prefers_environment(tmp_path, monkeypatch):
  key_file = tmp_path / "key"
  config.save_api_key("from-file", key_file)
  assert oct(os.stat(key_file).st_mode & 0o777) == "0o600"
  monkeypatch.delenv(config.API_KEY_ENV, raising=False)
  assert config.get_api_key(key_file) == "from-file"
  monkeypatch.setenv(config.API_KEY_ENV, "from-env")
  assert config.get_api_key(key_file) == "from-env"


def test_api_key_missing(tmp_path, monkeypatch):
  monkeypatch.delenv(config.API_KEY_ENV, raising=False)
  assert config.get_api_key(tmp_path / "nothing") == ""
