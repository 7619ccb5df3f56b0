"""Tests for configuration loading and validation."""

import argparse
import re

import pytest
import yaml

from logmonitor.config import (
    DEFAULT_CONFIG_TEMPLATE,
    Config,
    _parse_bool,
    compile_pattern,
    load_config,
    load_yaml_config,
    validate_config,
    write_default_config,
)
from logmonitor.errors import ConfigError


def cli(**overrides) -> argparse.Namespace:
    values = {
        "log": None, "email": None, "threshold": None, "interval": None,
        "cooldown": None, "pattern": None, "state_dir": None, "lock_file": None,
        "verbose": False, "config": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class TestParseBool:
    def test_true_values(self):
        for val in ("true", "True", "1", "yes", True):
            assert _parse_bool(val) is True

    def test_false_values(self):
        for val in ("false", "0", "no", "", False):
            assert _parse_bool(val) is False


class TestConfigDefaults:
    def test_defaults(self):
        cfg = Config()
        assert cfg.log_file == "/var/log/apache2/access.log"
        assert cfg.error_pattern == r'HTTP/[0-9.]*"? 5[0-9][0-9]'
        assert cfg.alert_email == "admin@example.com"
        assert cfg.check_interval == 60
        assert cfg.alert_threshold == 5
        assert cfg.time_window == 300
        assert cfg.alert_cooldown == 1800
        assert cfg.enable_syslog is True
        assert cfg.debug is False
        assert cfg.async_alerts is False
        assert cfg.max_read_bytes == 1_000_000

    def test_default_pattern_matches_combined_format(self):
        pattern = re.compile(Config().error_pattern)
        combined = '10.0.0.1 - - [13/Feb/2026:06:50:53 +0000] "GET /api HTTP/1.1" {} 12 "-" "curl/8.0"'
        assert pattern.search(combined.format(500))
        assert pattern.search(combined.format(503))
        assert not pattern.search(combined.format(200))
        assert not pattern.search(combined.format(404))

    def test_default_pattern_matches_unquoted_status(self):
        pattern = re.compile(Config().error_pattern)
        assert pattern.search("upstream replied HTTP/1.0 502 Bad Gateway")

    def test_frozen(self):
        cfg = Config()
        with pytest.raises(AttributeError):
            cfg.alert_threshold = 1


class TestLoadYamlConfig:
    def test_none_path(self):
        assert load_yaml_config(None) == {}

    def test_missing_file(self, tmp_path):
        assert load_yaml_config(str(tmp_path / "missing.yml")) == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("log_file: [unclosed")
        assert load_yaml_config(str(path)) == {}

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        assert load_yaml_config(str(path)) == {}

    def test_loads_mapping(self, tmp_path):
        path = tmp_path / "cfg.yml"
        path.write_text("alert_threshold: 3\nlog_file: /tmp/x.log\n")
        assert load_yaml_config(str(path)) == {"alert_threshold": 3, "log_file": "/tmp/x.log"}


class TestLoadConfig:
    def test_yaml_values(self):
        cfg = load_config(None, {"alert_threshold": 3, "notifiers": ["log"]}, env={})
        assert cfg.alert_threshold == 3
        assert cfg.notifiers == ("log",)

    def test_unknown_yaml_key_ignored(self):
        cfg = load_config(None, {"bogus": 1}, env={})
        assert cfg == Config()

    def test_env_overrides_yaml(self):
        cfg = load_config(None, {"alert_threshold": 3},
                          env={"ALERT_THRESHOLD": "9", "NOTIFIERS": "webhook, log",
                               "DEBUG_MODE": "true"})
        assert cfg.alert_threshold == 9
        assert cfg.notifiers == ("webhook", "log")
        assert cfg.debug is True

    def test_empty_env_value_ignored(self):
        cfg = load_config(None, {}, env={"LOG_FILE": ""})
        assert cfg.log_file == Config.log_file

    def test_cli_overrides_env(self):
        args = cli(log="/cli.log", threshold=2, interval=7, cooldown=0,
                   email="ops@example.org", pattern="FATAL", verbose=True)
        cfg = load_config(args, {"alert_threshold": 3}, env={"LOG_FILE": "/env.log"})
        assert cfg.log_file == "/cli.log"
        assert cfg.alert_threshold == 2
        assert cfg.check_interval == 7
        assert cfg.alert_cooldown == 0
        assert cfg.alert_email == "ops@example.org"
        assert cfg.error_pattern == "FATAL"
        assert cfg.debug is True

    def test_cli_config_path_recorded(self):
        cfg = load_config(cli(config="/etc/logmonitor.yml"), {}, env={})
        assert cfg.config_file == "/etc/logmonitor.yml"

    def test_delivery_and_read_limit_from_env(self):
        cfg = load_config(None, {}, env={"ASYNC_ALERTS": "yes", "MAX_LOG_SIZE": "4096"})
        assert cfg.async_alerts is True
        assert cfg.max_read_bytes == 4096

    def test_non_integer_yaml_value_raises(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config(None, {"alert_threshold": "five"}, env={})
        assert "alert_threshold" in str(exc_info.value)

    def test_non_integer_env_value_raises(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config(None, {}, env={"CHECK_INTERVAL": "abc"})
        assert "check_interval" in str(exc_info.value)

    def test_boolean_for_integer_raises(self):
        with pytest.raises(ConfigError):
            load_config(None, {"alert_cooldown": True}, env={})

    def test_list_for_integer_raises(self):
        with pytest.raises(ConfigError):
            load_config(None, {"smtp_port": [25]}, env={})


class TestValidateConfig:
    def test_valid(self, tmp_path):
        log = tmp_path / "access.log"
        log.write_text("")
        assert validate_config(Config(log_file=str(log))) == []

    def test_missing_directory(self, tmp_path):
        errors = validate_config(Config(log_file=str(tmp_path / "no" / "access.log")))
        assert any("does not exist" in e for e in errors)

    def test_missing_file_in_existing_directory_is_allowed(self, tmp_path):
        assert validate_config(Config(log_file=str(tmp_path / "later.log"))) == []

    def test_glob_in_existing_directory(self, tmp_path):
        assert validate_config(Config(log_file=str(tmp_path / "*.log"))) == []

    def test_bad_email(self, tmp_path):
        errors = validate_config(Config(log_file=str(tmp_path / "a.log"), alert_email="nope"))
        assert errors == ["Invalid email address: nope"]

    def test_email_not_checked_without_smtp(self, tmp_path):
        cfg = Config(log_file=str(tmp_path / "a.log"), alert_email="nope", notifiers=("log",))
        assert validate_config(cfg) == []

    def test_numeric_limits(self, tmp_path):
        cfg = Config(log_file=str(tmp_path / "a.log"), check_interval=0,
                     alert_threshold=0, alert_cooldown=-1)
        errors = validate_config(cfg)
        assert len(errors) == 3

    def test_bad_pattern(self, tmp_path):
        errors = validate_config(Config(log_file=str(tmp_path / "a.log"), error_pattern="("))
        assert len(errors) == 1
        assert "error_pattern" in errors[0]

    def test_negative_read_limit(self, tmp_path):
        errors = validate_config(Config(log_file=str(tmp_path / "a.log"), max_read_bytes=-1))
        assert errors == ["max_read_bytes must not be negative"]

    def test_compile_pattern(self):
        assert compile_pattern("5[0-9][0-9]").search("HTTP/1.1 500")
        with pytest.raises(ConfigError):
            compile_pattern("(")

    def test_webhook_requires_url(self, tmp_path):
        cfg = Config(log_file=str(tmp_path / "a.log"), notifiers=("webhook",))
        assert validate_config(cfg) == ["webhook notifier enabled but webhook_url is empty"]

    def test_unknown_notifier(self, tmp_path):
        cfg = Config(log_file=str(tmp_path / "a.log"), notifiers=("pager",))
        assert validate_config(cfg) == ["Unknown notifier(s): pager"]


class TestDefaultConfigFile:
    def test_template_is_valid_yaml_for_config(self):
        data = yaml.safe_load(DEFAULT_CONFIG_TEMPLATE)
        cfg = load_config(None, data, env={})
        assert cfg.alert_threshold == 5
        assert cfg.notifiers == ("smtp", "file")
        assert cfg.error_pattern == Config().error_pattern
        assert cfg.max_read_bytes == 1_000_000

    def test_write_default_config(self, tmp_path):
        path = tmp_path / "conf" / "logmonitor.yml"
        write_default_config(str(path))
        assert load_yaml_config(str(path))["alert_cooldown"] == 1800
