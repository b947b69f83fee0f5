from __future__ import annotations

import pytest

from everon.services.settings import ConfigError, Settings, load_settings


def test_env_overrides_yaml(tmp_path):
    cfg = tmp_path / "everon.yaml"
    cfg.write_text("reg_secret: from-file\ntimezone: Asia/Bangkok\nstore_path: /data/reg.json\nunknown: 1\n")
    settings = load_settings(cfg, env={"REG_SECRET": "  abc  ", "EVERON_CODE_MIN_LENGTH": "8"})
    assert settings.reg_secret == "ABC"
    assert settings.timezone == "Asia/Bangkok"
    assert settings.store_path == "/data/reg.json"
    assert settings.code_min_length == 8


def test_config_path_from_env(tmp_path):
    cfg = tmp_path / "everon.yaml"
    cfg.write_text("link_token_max_age: 300\n")
    settings = load_settings(env={"EVERON_CONFIG": str(cfg)})
    assert settings.link_token_max_age == 300
    assert settings.reg_secret == ""


def test_require_secret():
    with pytest.raises(ConfigError):
        Settings().require_secret()
    assert Settings(reg_secret="s").require_secret() == "S"


@pytest.mark.parametrize(
    "content",
    ["- just\n- a list\n", "reg_secret: [unclosed\n", "code_min_length: 10\ncode_max_length: 5\n"],
)
def test_bad_config_is_a_config_error(tmp_path, content):
    cfg = tmp_path / "everon.yaml"
    cfg.write_text(content)
    with pytest.raises(ConfigError):
        load_settings(cfg, env={})


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "absent.yaml", env={})
