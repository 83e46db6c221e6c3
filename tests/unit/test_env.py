import os

from structgen.core.database import async_database_url
from structgen.utils.env import default_env_path, load_env_file, parse_env_text


def test_parse_env_text_handles_comments_exports_and_quotes():
  text = "\n".join(
    [
      "# local overrides",
      "export STRUCTGEN_PG_DSN=postgresql://localhost/structgen",
      'ANTHROPIC_API_KEY="sk-quoted"',
      "STRUCTGEN_LOG_LEVEL = debug ",
      "not a pair",
      "=missing-key",
    ]
  )

  assert parse_env_text(text) == {
    "STRUCTGEN_PG_DSN": "postgresql://localhost/structgen",
    "ANTHROPIC_API_KEY": "sk-quoted",
    "STRUCTGEN_LOG_LEVEL": "debug",
  }


def test_load_env_file_keeps_existing_values(tmp_path, monkeypatch):
  env_file = tmp_path / ".env"
  env_file.write_text("STRUCTGEN_TEST_KEEP=from-file\nSTRUCTGEN_TEST_NEW=fresh\n", encoding="utf-8")
  monkeypatch.setenv("STRUCTGEN_TEST_KEEP", "from-env")
  monkeypatch.delenv("STRUCTGEN_TEST_NEW", raising=False)

  applied = load_env_file(env_file)

  assert applied == {"STRUCTGEN_TEST_NEW": "fresh"}
  assert os.environ["STRUCTGEN_TEST_KEEP"] == "from-env"
  monkeypatch.delenv("STRUCTGEN_TEST_NEW")


def test_load_env_file_missing_path_is_a_no_op(tmp_path):
  assert load_env_file(tmp_path / "absent.env") == {}


def test_env_file_location_can_be_overridden(tmp_path, monkeypatch):
  monkeypatch.setenv("STRUCTGEN_ENV_FILE", str(tmp_path / "custom.env"))

  assert default_env_path() == tmp_path / "custom.env"


def test_async_database_url_switches_to_asyncpg():
  assert async_database_url("postgres://u:p@db/structgen") == "postgresql+asyncpg://u:p@db/structgen"
  assert async_database_url("postgresql://db/structgen") == "postgresql+asyncpg://db/structgen"
  assert async_database_url("postgresql+asyncpg://db/structgen") == "postgresql+asyncpg://db/structgen"
  assert async_database_url(None) is None
