"""Tests for the CLI module."""

import json
import logging
import os
import tempfile
import unittest
from unittest.mock import patch

import yaml

from taskgate.cli import CLI
from taskgate.config import TOKEN_ENV_VAR


class TestCLI(unittest.TestCase):
    """Test cases for CLI."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_config_fd, self.temp_config_path = tempfile.mkstemp(suffix=".yml")
        os.close(self.temp_config_fd)
        os.unlink(self.temp_config_path)
        self.env_patch = patch.dict(os.environ, {}, clear=False)
        self.env_patch.start()
        os.environ.pop(TOKEN_ENV_VAR, None)
        self.cli = CLI(config_path=self.temp_config_path)

    def tearDown(self):
        """Tear down test fixtures."""
        self.env_patch.stop()
        logging.getLogger().setLevel(logging.INFO)
        logging.getLogger("taskgate").setLevel(logging.NOTSET)
        if os.path.exists(self.temp_config_path):
            os.unlink(self.temp_config_path)

    def _saved_config(self):
        with open(self.temp_config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)

    def test_parse_args(self):
        """Test parsing arguments."""
        args = self.cli.parse_args(["serve", "--port", "9000", "--no-cors", "--demo"])
        self.assertEqual(args.command, "serve")
        self.assertEqual(args.port, 9000)
        self.assertTrue(args.no_cors)
        self.assertTrue(args.demo)
        self.assertIsNone(args.host)

        args = self.cli.parse_args(["token", "generate", "--save"])
        self.assertEqual(args.command, "token")
        self.assertEqual(args.token_command, "generate")
        self.assertTrue(args.save)

        args = self.cli.parse_args(["config", "show", "server", "port"])
        self.assertEqual(args.config_command, "show")
        self.assertEqual(args.section, "server")
        self.assertEqual(args.key, "port")

        args = self.cli.parse_args(["tools", "list"])
        self.assertEqual(args.tools_command, "list")
        self.assertEqual(args.category, "all")

    def test_run_no_command(self):
        """Test running with no command."""
        with patch("builtins.print"):
            self.assertEqual(self.cli.run([]), 1)

    def test_run_invalid_category(self):
        """Unknown categories are rejected by argparse."""
        with patch("sys.stderr"):
            self.assertEqual(self.cli.run(["tools", "list", "--category", "nope"]), 1)

    @patch("taskgate.cli.CLI._handle_config_command")
    def test_run_config_command(self, mock_handle):
        """Test routing to config command handler."""
        mock_handle.return_value = 0

        exit_code = self.cli.run(["config", "show"])

        mock_handle.assert_called_once()
        self.assertEqual(exit_code, 0)

    @patch("builtins.print")
    def test_tools_list_outputs_table(self, mock_print):
        """Tools list prints one row per tool of the category."""
        exit_code = self.cli.run(["tools", "list", "--category", "meta"])

        self.assertEqual(exit_code, 0)
        printed = "\n".join(str(call.args[0]) for call in mock_print.call_args_list)
        self.assertIn("mcp_list_tools", printed)
        self.assertIn("mcp_get_tool_schema", printed)
        self.assertNotIn("query_tasks", printed)

    @patch("builtins.print")
    def test_token_generate_without_save(self, mock_print):
        exit_code = self.cli.run(["token", "generate"])

        self.assertEqual(exit_code, 0)
        token = mock_print.call_args_list[0].args[0]
        self.assertGreaterEqual(len(token), 32)
        self.assertNotIn("+", token)
        self.assertFalse(os.path.exists(self.temp_config_path))

    @patch("builtins.print")
    def test_token_generate_and_save(self, mock_print):
        exit_code = self.cli.run(["token", "generate", "--save"])

        self.assertEqual(exit_code, 0)
        token = mock_print.call_args_list[0].args[0]
        self.assertEqual(self._saved_config()["security"]["auth_token"], token)
        mock_print.assert_any_call(f"Saved token to {self.temp_config_path}")

    @patch("builtins.print")
    def test_config_set_updates_value(self, mock_print):
        """Setting a config value should persist to Config."""
        exit_code = self.cli.run(["config", "set", "server", "port", "8100"])

        self.assertEqual(exit_code, 0)
        self.assertEqual(self.cli.config.get("server", "port"), 8100)
        self.assertEqual(self._saved_config()["server"]["port"], 8100)
        mock_print.assert_any_call("Updated server.port = 8100")

    @patch("builtins.print")
    def test_config_show_key(self, mock_print):
        exit_code = self.cli.run(["config", "show", "tools", "timeout"])

        self.assertEqual(exit_code, 0)
        mock_print.assert_any_call(30)

    @patch("builtins.print")
    def test_config_show_section_as_json(self, mock_print):
        exit_code = self.cli.run(["config", "show", "logs", "--json"])

        self.assertEqual(exit_code, 0)
        self.assertEqual(json.loads(mock_print.call_args.args[0]), {"capacity": 1000})

    @patch("builtins.print")
    def test_config_show_handles_missing_section(self, mock_print):
        """Show should error when section missing."""
        exit_code = self.cli.run(["config", "show", "missing"])

        self.assertEqual(exit_code, 1)
        mock_print.assert_any_call("Error: Configuration section 'missing' not found")

    @patch("builtins.print")
    def test_config_path_outputs_path(self, mock_print):
        """Path command should print config file location."""
        exit_code = self.cli.run(["config", "path"])

        self.assertEqual(exit_code, 0)
        mock_print.assert_any_call(self.temp_config_path)

    def test_build_server_config_applies_overrides(self):
        self.cli.config.set("security", "auth_token", "from-file")
        args = self.cli.parse_args(
            ["serve", "--host", "0.0.0.0", "--port", "9001", "--token", "cli", "--no-cors"]
        )

        server_config = self.cli.build_server_config(args)

        self.assertEqual(server_config.host, "0.0.0.0")
        self.assertEqual(server_config.port, 9001)
        self.assertEqual(server_config.auth_token, "cli")
        self.assertFalse(server_config.cors_enabled)

    def test_environment_token_overrides_config_file(self):
        self.cli.config.set("security", "auth_token", "from-file")
        os.environ[TOKEN_ENV_VAR] = "from-env"

        server_config = self.cli.build_server_config(self.cli.parse_args(["serve"]))

        self.assertEqual(server_config.auth_token, "from-env")

    @patch("taskgate.cli.run_server")
    @patch("builtins.print")
    def test_serve_refuses_when_disabled(self, mock_print, mock_run_server):
        self.cli.config.set("server", "enabled", False)

        exit_code = self.cli.run(["serve"])

        self.assertEqual(exit_code, 1)
        mock_run_server.assert_not_called()
        mock_print.assert_any_call(
            "Error: The MCP server is disabled (server.enabled is false)"
        )

    @patch("taskgate.cli.run_server")
    @patch("builtins.print")
    def test_serve_rejects_invalid_log_level(self, mock_print, mock_run_server):
        exit_code = self.cli.run(["serve", "--log-level", "chatty"])

        self.assertEqual(exit_code, 1)
        mock_run_server.assert_not_called()

    @patch("taskgate.cli.run_server")
    @patch("builtins.print")
    def test_serve_applies_critical_log_level(self, mock_print, mock_run_server):
        self.cli.config.set("security", "instance_id", "fixed")

        exit_code = self.cli.run(["serve", "--log-level", "critical"])

        self.assertEqual(exit_code, 0)
        self.assertEqual(logging.getLogger("taskgate").level, logging.CRITICAL)
        gateway = mock_run_server.call_args.args[0]
        self.assertEqual(gateway.config.resolved_log_level, logging.CRITICAL)

    @patch("taskgate.cli.run_server")
    @patch("builtins.print")
    def test_serve_generates_instance_id_and_runs(self, mock_print, mock_run_server):
        self.cli.config.set("security", "auth_token", "tok")

        exit_code = self.cli.run(["serve", "--demo"])

        self.assertEqual(exit_code, 0)
        mock_run_server.assert_called_once()
        gateway = mock_run_server.call_args.args[0]
        instance_id = gateway.config.instance_id
        self.assertTrue(instance_id)
        self.assertEqual(self._saved_config()["security"]["instance_id"], instance_id)
        mock_print.assert_any_call(f"Client app id: {instance_id}")

        repository = gateway.executor.get_bridge()
        self.assertEqual(len(repository), 3)

    @patch("taskgate.cli.run_server")
    @patch("builtins.print")
    def test_serve_loads_tasks_file(self, mock_print, mock_run_server):
        fd, tasks_path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump([{"id": "a", "content": "From file"}], f)
        self.addCleanup(os.unlink, tasks_path)
        self.cli.config.set("security", "instance_id", "fixed")

        exit_code = self.cli.run(["serve", "--tasks-file", tasks_path])

        self.assertEqual(exit_code, 0)
        gateway = mock_run_server.call_args.args[0]
        self.assertEqual(gateway.config.instance_id, "fixed")
        self.assertEqual(len(gateway.executor.get_bridge()), 1)

    @patch("taskgate.cli.run_server")
    @patch("builtins.print")
    def test_serve_reports_unreadable_tasks_file(self, mock_print, mock_run_server):
        exit_code = self.cli.run(["serve", "--tasks-file", "/nonexistent/tasks.json"])

        self.assertEqual(exit_code, 1)
        mock_run_server.assert_not_called()


if __name__ == "__main__":
    unittest.main()
