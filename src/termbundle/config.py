"""Configuration management for termbundle."""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from .constants import DEFAULT_ARCHIVE_MEMBER
from .utils.exceptions import ConfigurationError

FALSY_VALUES = ("false", "0", "no", "off")


@dataclass
class ServerConfig:
    """FHIR terminology server connection configuration."""

    name: str
    base_url: str
    timeout: int = 30
    verify_ssl: bool = True
    auth_token: str | None = None  # Sent as a Bearer token when set
    max_connections: int = 20  # Maximum total connections
    max_keepalive: int = 10  # Maximum keep-alive connections


@dataclass
class ResolverConfig:
    """Dependency resolution settings."""

    transitive: bool = True  # Follow dependencies of dependencies until closure
    max_concurrency: int = 10  # Concurrent fetches per resolution


@dataclass
class IngestConfig:
    """Ingestion pipeline settings."""

    archive_member: str = DEFAULT_ARCHIVE_MEMBER
    max_concurrency: int = 8  # Artifacts processed concurrently


@dataclass
class CacheConfig:
    """Read cache for fetched terminology resources."""

    enabled: bool = False
    directory: str = ".termbundle_cache"
    ttl_seconds: int = 3600  # Cache TTL (1 hour)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"
    file: Path | None = None


@dataclass
class TerminologyConfig:
    """
    Complete configuration for termbundle.

    This combines all configuration sections.
    """

    servers: list[ServerConfig] = field(default_factory=list)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def get_server(self, name: str) -> ServerConfig:
        """
        Look up a configured server by name.

        Args:
            name: Server name from the configuration

        Returns:
            Matching ServerConfig

        Raises:
            ConfigurationError: If no server has that name
        """
        for server in self.servers:
            if server.name == name:
                return server
        known = ", ".join(s.name for s in self.servers) or "none configured"
        raise ConfigurationError(f"Unknown server '{name}' (known: {known})")

    @classmethod
    def from_file(cls, config_path: Path) -> "TerminologyConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML config file

        Returns:
            TerminologyConfig instance
        """
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file {config_path}: {e}"
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration file structure in {config_path}: "
                f"expected dictionary, got {type(data).__name__}"
            )

        try:
            servers = [ServerConfig(**entry) for entry in data.get("servers") or []]
            resolver = ResolverConfig(**(data.get("resolver") or {}))
            ingest = IngestConfig(**(data.get("ingest") or {}))
            cache = CacheConfig(**(data.get("cache") or {}))

            logging_data = dict(data.get("logging") or {})
            if logging_data.get("file"):
                logging_data["file"] = Path(logging_data["file"])
            logging = LoggingConfig(**logging_data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

        names = [s.name for s in servers]
        if len(names) != len(set(names)):
            raise ConfigurationError(f"Duplicate server names in {config_path}: {names}")

        return cls(
            servers=servers,
            resolver=resolver,
            ingest=ingest,
            cache=cache,
            logging=logging,
        )

    def to_file(self, config_path: Path) -> None:
        """
        Save configuration to YAML file.

        Args:
            config_path: Path to save config file
        """
        data = asdict(self)
        data["logging"] = {
            k: str(v) if isinstance(v, Path) else v
            for k, v in data["logging"].items()
            if v is not None
        }
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8"
        )

    @classmethod
    def from_env(cls) -> "TerminologyConfig":
        """
        Create configuration from environment variables.

        Environment variables:
            TERMBUNDLE_SOURCE_URL: Base URL of the server dependencies are fetched from
            TERMBUNDLE_TARGET_URL: Base URL of the server bundles are submitted to
            TERMBUNDLE_AUTH_TOKEN: Optional bearer token for both servers
            TERMBUNDLE_VERIFY_SSL: Set to 'false' to disable certificate checks
            LOG_LEVEL: Logging level (default: INFO)
            LOG_FORMAT: 'console' or 'json' (default: console)

        Returns:
            TerminologyConfig instance
        """
        token = os.environ.get("TERMBUNDLE_AUTH_TOKEN") or None
        verify_ssl = os.environ.get("TERMBUNDLE_VERIFY_SSL", "true").lower() not in FALSY_VALUES

        servers = []
        for name, var in (("source", "TERMBUNDLE_SOURCE_URL"), ("target", "TERMBUNDLE_TARGET_URL")):
            url = os.environ.get(var)
            if url:
                servers.append(
                    ServerConfig(name=name, base_url=url, auth_token=token, verify_ssl=verify_ssl)
                )

        logging_config = LoggingConfig(
            level=os.environ.get("LOG_LEVEL", "INFO"),
            format=os.environ.get("LOG_FORMAT", "console"),
        )

        return cls(servers=servers, logging=logging_config)


def load_config(config_file: Path | None = None) -> TerminologyConfig:
    """
    Load configuration from file or environment variables.

    Args:
        config_file: Optional path to YAML config file

    Returns:
        TerminologyConfig instance

    Raises:
        FileNotFoundError: If config_file is specified but doesn't exist
    """
    if config_file:
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")
        return TerminologyConfig.from_file(config_file)
    return TerminologyConfig.from_env()
