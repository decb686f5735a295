"""
Configuration management for pg_collector.

Supports:
- TOML config files
- Environment variables
- Command-line overrides
- Sensible defaults

Priority (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Config file
4. Defaults
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib


API_KEY_ENV_VAR = "PG_COLLECTOR_API_KEY"

# Default config file locations (searched in order)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / "pg_collector.toml",
    Path.cwd() / "config.toml",
    Path.home() / ".pg_collector" / "config.toml",
    Path.home() / ".config" / "pg_collector" / "config.toml",
    Path("/etc/pg_collector/config.toml"),
]

DEFAULT_STATE_FILENAME = str(Path.home() / ".pg_collector" / "state.json")


@dataclass
class ServerConfig:
    """One monitored PostgreSQL server and the API key its state is stored under."""
    name: str = "default"
    api_key: str = ""
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    dbname: str = "postgres"
    sslmode: str = "prefer"

    def __post_init__(self):
        if not self.api_key:
            self.api_key = os.environ.get(API_KEY_ENV_VAR, "")

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg2.connect()."""
        kwargs = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "dbname": self.dbname,
            "sslmode": self.sslmode,
        }
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def describe(self) -> str:
        return f"{self.name} ({self.user}@{self.host}:{self.port}/{self.dbname})"


@dataclass
class CollectionOpts:
    """What to collect and whether results are kept."""
    collect_relations: bool = True
    collect_functions: bool = True
    collect_settings: bool = True

    application_name: str = "pg_collector"
    statement_timeout_ms: int = 30000  # Applied to every statement sent to the database

    diff_statements: bool = True

    submit_collected_data: bool = True
    test_run: bool = False

    state_filename: str = DEFAULT_STATE_FILENAME
    write_state_update: bool = True


@dataclass
class OutputConfig:
    """Output configuration."""
    verbose: bool = False
    quiet: bool = False
    json: bool = False


@dataclass
class Config:
    """Main configuration container."""
    servers: List[ServerConfig] = field(default_factory=list)
    collection: CollectionOpts = field(default_factory=CollectionOpts)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Source tracking
    _config_file: Optional[Path] = None

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load configuration from file.

        Args:
            config_path: Explicit path to config file. If None, searches default locations.

        Returns:
            Config instance with loaded values
        """
        config = cls()

        # Find config file
        if config_path:
            path = Path(config_path).expanduser()
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            path = cls._find_config_file()

        if path:
            config = cls._load_from_file(path)
            config._config_file = path

        return config

    @classmethod
    def _find_config_file(cls) -> Optional[Path]:
        """Find config file in default locations."""
        for path in CONFIG_SEARCH_PATHS:
            if path.exists():
                return path
        return None

    @classmethod
    def _load_from_file(cls, path: Path) -> "Config":
        """Load config from TOML file."""
        with open(path, "rb") as f:
            data = tomllib.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        config = cls()
        defaults = ServerConfig.__dataclass_fields__

        for entry in data.get("servers", []):
            config.servers.append(ServerConfig(
                **{k: v for k, v in entry.items() if k in defaults}
            ))

        # Collection
        if "collection" in data:
            coll = data["collection"]
            opts = config.collection
            config.collection = CollectionOpts(
                collect_relations=coll.get("relations", opts.collect_relations),
                collect_functions=coll.get("functions", opts.collect_functions),
                collect_settings=coll.get("settings", opts.collect_settings),
                application_name=coll.get("application_name", opts.application_name),
                statement_timeout_ms=coll.get("statement_timeout_ms", opts.statement_timeout_ms),
                diff_statements=coll.get("diff_statements", opts.diff_statements),
                submit_collected_data=coll.get("submit_collected_data", opts.submit_collected_data),
            )

        # State
        if "state" in data:
            state = data["state"]
            config.collection.state_filename = str(
                Path(state.get("filename", config.collection.state_filename)).expanduser()
            )
            config.collection.write_state_update = state.get(
                "write_updates", config.collection.write_state_update
            )

        # Output
        if "output" in data:
            out = data["output"]
            config.output = OutputConfig(
                verbose=out.get("verbose", config.output.verbose),
                quiet=out.get("quiet", config.output.quiet),
                json=out.get("json", config.output.json),
            )

        return config

    def override_from_args(self, args) -> "Config":
        """
        Override config values from argparse namespace.

        Args with value None are ignored (keeping config file values).
        """
        if getattr(args, "test", None):
            self.collection.test_run = True
            self.collection.submit_collected_data = False
        if getattr(args, "no_write_state", None):
            self.collection.write_state_update = False
        if getattr(args, "state_file", None):
            self.collection.state_filename = str(Path(args.state_file).expanduser())
        if getattr(args, "statement_timeout_ms", None):
            self.collection.statement_timeout_ms = args.statement_timeout_ms

        # Output overrides
        if getattr(args, "verbose", None):
            self.output.verbose = True
        if getattr(args, "quiet", None):
            self.output.quiet = True
            self.output.verbose = False
        if getattr(args, "json", None):
            self.output.json = True

        return self

    def validate(self) -> list:
        """
        Validate configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.servers:
            errors.append("No servers configured. Add a [[servers]] section")

        seen_keys = set()
        for server in self.servers:
            if not server.host:
                errors.append(f"Server '{server.name}': host is required")
            if not server.api_key:
                errors.append(
                    f"Server '{server.name}': api_key not set. "
                    f"Set it in the config file or via {API_KEY_ENV_VAR}"
                )
            elif server.api_key in seen_keys:
                errors.append(f"Server '{server.name}': api_key is shared with another server")
            seen_keys.add(server.api_key)

        if self.collection.statement_timeout_ms <= 0:
            errors.append("statement_timeout_ms must be positive")

        return errors

    def summary(self, include_config_path: bool = True) -> str:
        """Generate human-readable config summary."""
        lines = []

        if include_config_path:
            if self._config_file:
                lines.append(f"Config: {self._config_file}")
            else:
                lines.append("Config: (defaults)")

        for server in self.servers:
            lines.append(f"Server: {server.describe()}")

        opts = self.collection
        if opts.test_run:
            lines.append("State: (disabled, test run)")
        else:
            mode = "read/write" if opts.write_state_update else "read-only"
            lines.append(f"State: {opts.state_filename} ({mode})")
        lines.append(f"Statement timeout: {opts.statement_timeout_ms}ms")

        return "\n".join(lines)


def create_example_config(path: str = "pg_collector.toml") -> Path:
    """Create example config file."""
    target = Path(path)

    if target.exists():
        raise FileExistsError(f"Config file already exists: {path}")

    target.write_text("""# pg_collector Configuration

[collection]
relations = true
functions = true
settings = true
diff_statements = true
statement_timeout_ms = 30000

[state]
filename = "~/.pg_collector/state.json"
write_updates = true

[[servers]]
name = "primary"
api_key = ""          # or set PG_COLLECTOR_API_KEY
host = "localhost"
port = 5432
user = "postgres"
password = ""
dbname = "postgres"
""")

    return target
