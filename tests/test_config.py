from pathlib import Path

from picklist.config import DEFAULT_CORS_ORIGINS, load_settings


def test_defaults():
    settings = load_settings({})
    assert settings.storage_dir == Path(".picklist_state")
    assert settings.remote_url is None
    assert settings.remote_timeout == 10.0
    assert settings.log_level == "INFO"
    assert settings.cors_origins == DEFAULT_CORS_ORIGINS


def test_environment_overrides():
    settings = load_settings(
        {
            "PICKLIST_STORAGE_DIR": "/tmp/picklists",
            "PICKLIST_REMOTE_URL": " http://scout.local/api/updatePicklist ",
            "PICKLIST_REMOTE_TIMEOUT": "2.5",
            "LOG_LEVEL": "debug",
            "PICKLIST_CORS_ORIGINS": "http://a.test, http://b.test,",
        }
    )
    assert settings.storage_dir == Path("/tmp/picklists")
    assert settings.remote_url == "http://scout.local/api/updatePicklist"
    assert settings.remote_timeout == 2.5
    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_bad_timeout_falls_back_to_default():
    assert load_settings({"PICKLIST_REMOTE_TIMEOUT": "soon"}).remote_timeout == 10.0
    assert load_settings({"PICKLIST_REMOTE_TIMEOUT": "-1"}).remote_timeout == 10.0
