"""Command-line interface for taskgate."""

import argparse
import errno
import json
import logging
import sys
import uuid
from typing import Any, Iterable, List, Optional, Sequence

from . import __version__ as PACKAGE_VERSION
from .auth import generate_token
from .config import Config, ServerConfig, resolve_log_level
from .http import run_server
from .mcp import CATEGORIES, MCPGateway, list_tool_summaries
from .repository import MemoryTaskRepository, demo_tasks

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class CLI:
    """Command-line interface for running and configuring the gateway."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize the CLI.

        Args:
            config_path: Path to the configuration file
        """
        self.config = Config(config_path)

    def parse_args(self, args: List[str]) -> argparse.Namespace:
        """Parse command line arguments.

        Args:
            args: Command line arguments

        Returns:
            Parsed arguments
        """
        parser = self._build_parser()
        return parser.parse_args(args)

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="taskgate - MCP gateway for task management"
        )
        parser.add_argument(
            "--version", action="version", version=f"taskgate {PACKAGE_VERSION}"
        )
        subparsers = parser.add_subparsers(dest="command", help="Command to run")
        self._register_serve_command(subparsers)
        self._register_token_commands(subparsers)
        self._register_config_commands(subparsers)
        self._register_tools_commands(subparsers)
        return parser

    def _register_serve_command(self, subparsers) -> None:
        serve_parser = subparsers.add_parser("serve", help="Start the MCP HTTP server")
        serve_parser.add_argument("--host", help="Bind host (default from config)")
        serve_parser.add_argument(
            "--port", type=int, help="Bind port (default from config)"
        )
        serve_parser.add_argument(
            "--token",
            help="Authentication token (defaults to TASKGATE_TOKEN or the config file)",
        )
        serve_parser.add_argument(
            "--log-level", help="Log level for the server (e.g., debug, info)"
        )
        serve_parser.add_argument(
            "--no-cors", action="store_true", help="Disable CORS response headers"
        )
        serve_parser.add_argument(
            "--demo", action="store_true", help="Seed the task store with sample tasks"
        )
        serve_parser.add_argument(
            "--tasks-file",
            dest="tasks_file",
            help="JSON file holding a list of tasks to load at startup",
        )

    def _register_token_commands(self, subparsers) -> None:
        token_parser = subparsers.add_parser("token", help="Authentication tokens")
        token_subparsers = token_parser.add_subparsers(dest="token_command")
        generate_parser = token_subparsers.add_parser(
            "generate", help="Generate a new bearer token"
        )
        generate_parser.add_argument(
            "--save",
            action="store_true",
            help="Store the token as security.auth_token in the config file",
        )

    def _register_config_commands(self, subparsers) -> None:
        config_parser = subparsers.add_parser("config", help="Configuration management")
        config_subparsers = config_parser.add_subparsers(dest="config_command")

        show_parser = config_subparsers.add_parser(
            "show", help="Show configuration values"
        )
        show_parser.add_argument(
            "section", nargs="?", help="Configuration section to display"
        )
        show_parser.add_argument("key", nargs="?", help="Specific key within the section")
        show_parser.add_argument(
            "--json", action="store_true", help="Output configuration in JSON format"
        )

        set_parser = config_subparsers.add_parser(
            "set", help="Update a configuration value"
        )
        set_parser.add_argument("section", help="Configuration section")
        set_parser.add_argument("key", help="Configuration key")
        set_parser.add_argument("value", help="New value (use JSON for complex types)")

        config_subparsers.add_parser("path", help="Show configuration file path")

    def _register_tools_commands(self, subparsers) -> None:
        tools_parser = subparsers.add_parser("tools", help="Tool catalog")
        tools_subparsers = tools_parser.add_subparsers(dest="tools_command")
        list_parser = tools_subparsers.add_parser("list", help="List available tools")
        list_parser.add_argument(
            "--category",
            choices=list(CATEGORIES) + ["all"],
            default="all",
            help="Only list tools of this category",
        )

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI with the given arguments.

        Args:
            args: Command line arguments, defaults to sys.argv[1:]

        Returns:
            Exit code
        """
        if args is None:
            args = sys.argv[1:]

        try:
            parsed_args = self.parse_args(args)
        except SystemExit:
            return 1

        if not parsed_args.command:
            print("Error: No command specified")
            return 1

        handler_map = {
            "serve": self._serve,
            "token": self._handle_token_command,
            "config": self._handle_config_command,
            "tools": self._handle_tools_command,
        }

        handler = handler_map.get(parsed_args.command)
        if handler is None:
            print(f"Error: Unknown command {parsed_args.command}")
            return 1

        return handler(parsed_args)

    def build_server_config(self, args: argparse.Namespace) -> ServerConfig:
        """Merge command line overrides over the configured settings."""

        server_config = ServerConfig.from_config(self.config)
        overrides: dict = {}
        if getattr(args, "host", None):
            overrides["host"] = args.host
        if getattr(args, "port", None):
            overrides["port"] = args.port
        if getattr(args, "token", None):
            overrides["auth_token"] = args.token
        if getattr(args, "log_level", None):
            overrides["log_level"] = args.log_level
        if getattr(args, "no_cors", False):
            overrides["cors_enabled"] = False
        if overrides:
            server_config = server_config.update(**overrides)
        return server_config

    def _ensure_instance_id(self, server_config: ServerConfig) -> ServerConfig:
        if server_config.instance_id:
            return server_config
        instance_id = uuid.uuid4().hex
        self.config.set("security", "instance_id", instance_id)
        if not self.config.save():
            logger.warning("Instance id %s could not be persisted", instance_id)
        return server_config.update(instance_id=instance_id)

    def _load_tasks(self, args: argparse.Namespace) -> List[dict]:
        tasks: List[dict] = []
        if getattr(args, "demo", False):
            tasks.extend(demo_tasks())
        tasks_file = getattr(args, "tasks_file", None)
        if tasks_file:
            with open(tasks_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if not isinstance(loaded, list):
                raise ValueError(f"{tasks_file} must contain a JSON list of tasks")
            tasks.extend(loaded)
        return tasks

    def _serve(self, args: argparse.Namespace) -> int:
        try:
            server_config = self.build_server_config(args)
            self._resolve_log_level(server_config.log_level)
        except (KeyError, ValueError) as exc:
            print(f"Error: {exc}")
            return 1

        if not server_config.enabled:
            print("Error: The MCP server is disabled (server.enabled is false)")
            return 1

        log_level = server_config.resolved_log_level
        logging.getLogger().setLevel(log_level)
        logging.getLogger("taskgate").setLevel(log_level)

        try:
            tasks = self._load_tasks(args)
        except (OSError, ValueError) as exc:
            print(f"Error: Unable to load tasks: {exc}")
            return 1

        server_config = self._ensure_instance_id(server_config)
        gateway = MCPGateway(
            lambda: MemoryTaskRepository(tasks), server_config
        )

        token_state = "enabled" if server_config.auth_token else "missing"
        print(
            f"Starting taskgate {PACKAGE_VERSION} on "
            f"http://{server_config.host}:{server_config.port}/mcp (token={token_state})"
        )
        print(f"Client app id: {server_config.instance_id}")
        if not server_config.auth_token:
            print(
                "Warning: no auth token configured; every request will be rejected. "
                "Run 'taskgate token generate --save' first."
            )

        try:
            run_server(gateway)
        except OSError as exc:  # pragma: no cover - depends on environment
            if exc.errno == errno.EADDRINUSE:
                print(
                    f"Error: port {server_config.host}:{server_config.port} is already in use."
                )
                return 1
            raise
        except KeyboardInterrupt:
            print("taskgate stopped")
        return 0

    def _handle_token_command(self, args: argparse.Namespace) -> int:
        handler_map = {"generate": self._token_generate}
        handler = handler_map.get(getattr(args, "token_command", None))
        if handler is None:
            print(f"Error: Unknown token command {getattr(args, 'token_command', None)}")
            return 1
        return handler(args)

    def _token_generate(self, args: argparse.Namespace) -> int:
        token = generate_token()
        print(token)
        if args.save:
            self.config.set("security", "auth_token", token)
            if not self.config.save():
                print("Error: Failed to save configuration")
                return 1
            print(f"Saved token to {self.config.config_path}")
        return 0

    def _handle_config_command(self, args: argparse.Namespace) -> int:
        """Handle configuration commands."""
        command = getattr(args, "config_command", None)
        handler_map = {
            "show": self._config_show,
            "set": self._config_set,
            "path": self._config_path,
        }
        handler = handler_map.get(command)
        if handler is None:
            print(f"Error: Unknown config command {command}")
            return 1
        return handler(args)

    def _config_show(self, args: argparse.Namespace) -> int:
        section = getattr(args, "section", None)
        key = getattr(args, "key", None)
        data: Any

        if section is None:
            data = self.config.config
        else:
            section_data = self.config.get(section)
            if section_data is None:
                print(f"Error: Configuration section '{section}' not found")
                return 1
            if key is None:
                data = section_data
            else:
                value = self.config.get(section, key)
                if value is None:
                    print(f"Error: Key '{key}' not found in section '{section}'")
                    return 1
                data = value

        self._print_config_data(data, args.json)
        return 0

    def _config_set(self, args: argparse.Namespace) -> int:
        value = self._parse_config_value(args.value)
        self.config.set(args.section, args.key, value)
        if self.config.save():
            print(f"Updated {args.section}.{args.key} = {value}")
            return 0
        print("Error: Failed to save configuration")
        return 1

    def _config_path(self, _args: argparse.Namespace) -> int:
        print(self.config.config_path)
        return 0

    def _handle_tools_command(self, args: argparse.Namespace) -> int:
        command = getattr(args, "tools_command", None)
        if command != "list":
            print(f"Error: Unknown tools command {command}")
            return 1

        summaries = list_tool_summaries(args.category)
        if not summaries:
            print("No tools found")
            return 0
        rows = [(tool["name"], tool["category"], tool["title"]) for tool in summaries]
        self._print_table(("Name", "Category", "Title"), rows, title="Tools")
        return 0

    @staticmethod
    def _print_config_data(data: Any, as_json: bool):
        if as_json or isinstance(data, (dict, list)):
            print(json.dumps(data, indent=2, sort_keys=True, default=str))
        else:
            print(data)

    @staticmethod
    def _parse_config_value(raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            pass

        literal_map = {"true": True, "false": False, "null": None}
        lowered = raw.lower()
        if lowered in literal_map:
            return literal_map[lowered]
        return raw

    @staticmethod
    def _print_table(
        headers: Sequence[str], rows: Iterable[Sequence[Any]], *, title: Optional[str] = None
    ) -> None:
        rendered = [tuple("" if cell is None else str(cell) for cell in row) for row in rows]
        widths = [len(header) for header in headers]
        for row in rendered:
            for index, cell in enumerate(row):
                widths[index] = max(widths[index], len(cell))

        horizontal = "+" + "+".join("-" * (width + 2) for width in widths) + "+"

        def format_row(values: Sequence[str]) -> str:
            cells = [f" {value.ljust(widths[idx])} " for idx, value in enumerate(values)]
            return "|" + "|".join(cells) + "|"

        if title:
            print(title)
        print(horizontal)
        print(format_row(headers))
        print(horizontal.replace("-", "="))
        for row in rendered:
            print(format_row(row))
        print(horizontal)

    @staticmethod
    def _resolve_log_level(value: str) -> int:
        if not value:
            raise ValueError("Log level cannot be empty")

        level = resolve_log_level(value)
        if level is None:
            raise ValueError(
                "Invalid log level. Choose from CRITICAL, ERROR, WARNING, INFO, DEBUG."
            )

        return level


def main() -> int:
    """Entry point for the CLI."""
    cli = CLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
