import os

from rlsguard.config import Settings

ENV_VARS = (
    "DATABASE_URL",
    "BUCKET_NAME",
    "DEFAULT_BUCKET",
    "SESSION_TTL_SECONDS",
    "THERAPIST1_EMAIL",
    "THERAPIST1_PASSWORD",
    "THERAPIST2_EMAIL",
    "THERAPIST2_PASSWORD",
    "TEST_THERAPIST_EMAIL",
    "TEST_THERAPIST_PASSWORD",
    "RLSGUARD_BASE_URL",
    "STORAGE_ROOT",
    "MAX_BLOB_BYTES",
    "READ_RETRY_ATTEMPTS",
    "READ_RETRY_BACKOFF_SECONDS",
    "LOG_LEVEL",
)


def clear_env(monkeypatch):
    # load_dotenv writes into os.environ; give each test a private copy
    monkeypatch.setattr(os, "environ", {k: v for k, v in os.environ.items() if k not in ENV_VARS})


def test_defaults(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    settings = Settings.from_env(tmp_path / "missing.env")
    assert settings.bucket_name == "emg_data"
    assert settings.session_ttl_seconds == 3600
    assert settings.max_blob_bytes == 5 * 1024 * 1024
    assert not settings.is_harness_ready()
    assert "Configuration incomplete" in settings.status_message()


def test_dotenv_file_is_loaded(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "THERAPIST1_EMAIL=t1@example.com\n"
        "THERAPIST1_PASSWORD=pw-one\n"
        "THERAPIST2_EMAIL=t2@example.com\n"
        "THERAPIST2_PASSWORD=pw-two\n"
        "DEFAULT_BUCKET=c3d-files\n"
        "SESSION_TTL_SECONDS=120\n"
    )
    settings = Settings.from_env(str(env_file))
    assert settings.bucket_name == "c3d-files"
    assert settings.session_ttl_seconds == 120
    assert settings.therapist_credentials() == [
        ("t1@example.com", "pw-one"),
        ("t2@example.com", "pw-two"),
    ]
    assert settings.is_harness_ready()


def test_environment_wins_over_file(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text("BUCKET_NAME=from-file\n")
    monkeypatch.setenv("BUCKET_NAME", "from-env")
    assert Settings.from_env(str(env_file)).bucket_name == "from-env"


def test_placeholder_credentials_are_not_ready():
    settings = Settings(
        therapist1_email="therapist1@your-project.com",
        therapist1_password="x",
        therapist2_email="t2@example.com",
        therapist2_password="your-password",
    )
    assert not settings.is_harness_ready()
