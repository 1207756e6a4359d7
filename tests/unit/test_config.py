"""
Unit tests for relay configuration loading.
"""

import logging

import pytest

from browser_relay.config import ConfigError, RelayConfig, env_overrides, load_config
from browser_relay.logging_utils import LOG_FORMAT, configure_logging


class TestRelayConfig:
    """Test cases for RelayConfig."""

    def test_defaults(self):
        config = RelayConfig()

        assert config.port == 3000
        assert config.ws_port == 8081
        assert config.mcp_path == "/mcp"
        assert config.action_timeout == 15.0
        assert config.reconnect_delay == 5.0
        assert config.json_response is False
        assert config.snapshot_after_actions is True
        assert config.log_level == "INFO"

    @pytest.mark.parametrize("overrides, fragment", [
        ({"port": 70000}, "port must be between"),
        ({"ws_port": -1}, "ws_port must be between"),
        ({"action_timeout": 0}, "action_timeout must be positive"),
        ({"sse_keepalive": -1}, "sse_keepalive must not be negative"),
        ({"mcp_path": "mcp"}, "mcp_path must start with '/'"),
        ({"log_level": "chatty"}, "log_level must be one of"),
    ])
    def test_invalid_values(self, overrides, fragment):
        with pytest.raises(ConfigError, match=fragment):
            RelayConfig(**overrides)

    def test_log_level_normalized(self):
        assert RelayConfig(log_level="debug").log_level == "DEBUG"

    def test_from_dict_coerces_and_ignores_unknown(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = RelayConfig.from_dict({
                "port": "3100",
                "json_response": "yes",
                "action_timeout": 30,
                "cors_origins": "http://a.test, http://b.test",
                "mystery": 1
            })

        assert config.port == 3100
        assert config.json_response is True
        assert config.action_timeout == 30.0
        assert config.cors_origins == ["http://a.test", "http://b.test"]
        assert "mystery" in caplog.text

    def test_from_dict_rejects_bad_types(self):
        with pytest.raises(ConfigError, match="Invalid value for port"):
            RelayConfig.from_dict({"port": "three thousand"})
        with pytest.raises(ConfigError, match="Invalid value for json_response"):
            RelayConfig.from_dict({"json_response": "maybe"})

    def test_with_overrides_skips_none(self):
        config = RelayConfig().with_overrides(port=4000, host=None, log_level="warning")

        assert config.port == 4000
        assert config.host == "127.0.0.1"
        assert config.log_level == "WARNING"


class TestLoadConfig:
    """Test cases for load_config and env_overrides."""

    def test_env_overrides(self):
        overrides = env_overrides({
            "BROWSER_RELAY_PORT": "3500",
            "BROWSER_RELAY_WS_PORT": "9100",
            "BROWSER_RELAY_NOT_A_FIELD": "x",
            "MCP_LOG_LEVEL": "debug",
            "HOME": "/root"
        })

        assert overrides == {"port": "3500", "ws_port": "9100", "log_level": "debug"}

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"), environ={})

        assert config == RelayConfig()

    def test_yaml_file_with_relay_section(self, tmp_path):
        path = tmp_path / "relay.yaml"
        path.write_text(
            "relay:\n"
            "  port: 3200\n"
            "  ws_port: 8200\n"
            "  cors_origins:\n"
            "    - http://localhost:3000\n"
        )

        config = load_config(str(path), environ={})

        assert config.port == 3200
        assert config.ws_port == 8200
        assert config.cors_origins == ["http://localhost:3000"]

    def test_environment_beats_file(self, tmp_path):
        path = tmp_path / "relay.yaml"
        path.write_text("port: 3200\naction_timeout: 5\n")

        config = load_config(str(path), environ={"BROWSER_RELAY_PORT": "3300"})

        assert config.port == 3300
        assert config.action_timeout == 5.0

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "relay.yaml"
        path.write_text("port: [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to parse"):
            load_config(str(path), environ={})

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "relay.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config(str(path), environ={})


class TestLogging:
    """Test cases for configure_logging."""

    def test_configure_logging_installs_one_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging("debug")
            configure_logging("info")

            stream_handlers = [h for h in root.handlers if isinstance(h, logging.StreamHandler)]
            assert len(stream_handlers) == 1
            assert root.level == logging.INFO
            assert logging.getLogger("aiohttp.access").level == logging.WARNING
            assert logging.getLogger("mcp.server.lowlevel.server").level == logging.WARNING
            assert stream_handlers[0].formatter._fmt == LOG_FORMAT
            assert stream_handlers[0].formatter.datefmt == "%H:%M:%S"
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
