"""Config file and logging setup tests."""
import json

import structlog

from nousguard import config as cfgmod


def test_first_load_writes_defaults(tmp_path):
    cfg = cfgmod.load_config()
    path = tmp_path / "xdg" / "nousguard" / "config.json"
    assert path.exists()
    assert json.loads(path.read_text(encoding="utf-8")) == cfgmod.DEFAULT_CONFIG
    assert cfg["init_max_attempts"] == 3
    assert cfg["key_alias"] == "nousguard_encryption_key"


def test_file_values_override_defaults(tmp_path):
    cfgmod.save_config({"init_max_attempts": 5, "db_path": "/data/j.sqlite3"})
    cfg = cfgmod.load_config()
    assert cfg["init_max_attempts"] == 5
    assert cfg["db_path"] == "/data/j.sqlite3"
    # untouched keys still come from the defaults
    assert cfg["log_level"] == "INFO"


def test_environment_overrides_file(monkeypatch):
    cfgmod.save_config({"keystore_path": "from-file.sqlite3"})
    monkeypatch.setenv("NOUSGUARD_KEYSTORE", "from-env.sqlite3")
    monkeypatch.setenv("NOUSGUARD_LOG_LEVEL", "DEBUG")
    cfg = cfgmod.load_config()
    assert cfg["keystore_path"] == "from-env.sqlite3"
    assert cfg["log_level"] == "DEBUG"


def test_load_does_not_mutate_defaults():
    cfg = cfgmod.load_config()
    cfg["db_path"] = "changed"
    assert cfgmod.DEFAULT_CONFIG["db_path"] != "changed"


def test_configure_logging_writes_filtered_file(tmp_path):
    log_file = tmp_path / "logs" / "nousguard.log"
    cfgmod.configure_logging("INFO", log_file=str(log_file))
    log = structlog.get_logger("test")
    log.debug("too_chatty")
    log.info("entry_inserted", entry_id=7)
    text = log_file.read_text(encoding="utf-8")
    assert "entry_inserted" in text
    assert "entry_id=7" in text
    assert "too_chatty" not in text


def test_configure_logging_unknown_level_defaults_to_info(tmp_path):
    log_file = tmp_path / "n.log"
    cfgmod.configure_logging("chatty", log_file=str(log_file))
    log = structlog.get_logger("test")
    log.debug("hidden")
    log.warning("shown")
    text = log_file.read_text(encoding="utf-8")
    assert "shown" in text and "hidden" not in text
