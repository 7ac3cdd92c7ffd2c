"""
Configuration management for the Queue Minion daemon
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class DaemonConfig:
    """Configuration for the daemon's client socket and queue history."""

    socket_path: Optional[str] = None  # default: <runtime dir>/daemon.sock
    history_file: Optional[str] = None  # default: <config dir>/history.json
    resume_on_startup: bool = True


@dataclass
class PlayerConfig:
    """Configuration for the mpv control channel."""

    mpv_socket_path: Optional[str] = None  # default: <runtime dir>/mpv.sock
    mpv_binary: str = "mpv"
    spawn: bool = True  # False: attach to an mpv started elsewhere
    volume: int = 50
    extra_args: List[str] = field(default_factory=list)
    startup_timeout: float = 5.0  # Seconds to wait for the mpv socket
    command_timeout: float = 2.0
    telemetry_timeout: float = 0.5  # Keeps GetStatus responsive when mpv stalls

    def validate(self) -> None:
        """Validate player configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not 0 <= self.volume <= 100:
            raise ValueError(f"volume must be between 0 and 100, got {self.volume}")
        for name in ("startup_timeout", "command_timeout", "telemetry_timeout"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/queue-minion/queue-minion.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of rotated files to keep
    console_output: bool = False  # Also log to stderr (useful when running in foreground)

    def validate(self) -> None:
        """Validate logging configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.level}. Valid levels are: {sorted(VALID_LOG_LEVELS)}"
            )
        if self.max_file_size_mb <= 0:
            raise ValueError("max_file_size_mb must be positive")


@dataclass
class Config:
    """Main configuration object."""

    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "queue-minion"
    return Path.home() / ".config" / "queue-minion"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "queue-minion"
    return Path.home() / ".local" / "share" / "queue-minion"


def get_runtime_dir() -> Path:
    """Get the directory holding the daemon and mpv sockets.

    Uses XDG_RUNTIME_DIR if available, otherwise falls back to the data directory.
    """
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return Path(runtime_dir) / "queue-minion"
    return get_data_dir()


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. QUEUE_MINION_CONFIG environment variable
    2. Current working directory
    3. XDG_CONFIG_HOME/queue-minion (or ~/.config/queue-minion)
    """
    env_path = os.environ.get("QUEUE_MINION_CONFIG")
    if env_path:
        return Path(env_path).expanduser()

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_daemon_socket_path(config: Optional[Config] = None) -> Path:
    """Resolve the client-daemon socket path."""
    if config and config.daemon.socket_path:
        return Path(config.daemon.socket_path).expanduser()
    return get_runtime_dir() / "daemon.sock"


def get_mpv_socket_path(config: Optional[Config] = None) -> Path:
    """Resolve the daemon-mpv control socket path."""
    if config and config.player.mpv_socket_path:
        return Path(config.player.mpv_socket_path).expanduser()
    return get_runtime_dir() / "mpv.sock"


def get_history_path(config: Optional[Config] = None) -> Path:
    """Resolve the persisted queue file path."""
    if config and config.daemon.history_file:
        return Path(config.daemon.history_file).expanduser()
    return get_config_dir() / "history.json"


def get_log_file_path(config: Optional[Config] = None) -> Path:
    """Resolve the log file path."""
    if config and config.logging.log_file:
        return Path(config.logging.log_file).expanduser()
    return get_data_dir() / "queue-minion.log"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Queue Minion Configuration

[daemon]
# Socket clients connect to (auto-detected if not specified)
# socket_path = "/tmp/queue-minion-daemon.sock"

# Where the queue is persisted between runs
# history_file = "~/.config/queue-minion/history.json"

# Resume the current track when the daemon starts
resume_on_startup = true

[player]
# Path for the mpv control socket (auto-detected if not specified)
# mpv_socket_path = "/tmp/queue-minion-mpv.sock"

# mpv executable
mpv_binary = "mpv"

# Start mpv from the daemon (false: attach to an already running mpv)
spawn = true

# Default volume (0-100)
volume = 50

# Extra command line arguments for mpv
extra_args = []

# Seconds to wait for the mpv socket at startup
startup_timeout = 5.0

# Seconds to wait for mpv to acknowledge a command
command_timeout = 2.0

# Seconds to wait for position/duration queries
telemetry_timeout = 0.5

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/queue-minion/queue-minion.log)
# log_file = "/path/to/custom/queue-minion.log"

# Maximum log file size in MB before rotation
max_file_size_mb = 10

# Number of backup log files to keep
backup_count = 5

# Also output logs to stderr (useful when running in the foreground)
console_output = false
""".strip()


def _parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML, validating each section."""
    config = Config()

    if "daemon" in toml_data:
        daemon_data = toml_data["daemon"]
        config.daemon = DaemonConfig(
            socket_path=daemon_data.get("socket_path"),
            history_file=daemon_data.get("history_file"),
            resume_on_startup=daemon_data.get(
                "resume_on_startup", config.daemon.resume_on_startup
            ),
        )

    if "player" in toml_data:
        player_data = toml_data["player"]
        config.player = PlayerConfig(
            mpv_socket_path=player_data.get("mpv_socket_path"),
            mpv_binary=player_data.get("mpv_binary", config.player.mpv_binary),
            spawn=player_data.get("spawn", config.player.spawn),
            volume=player_data.get("volume", config.player.volume),
            extra_args=list(player_data.get("extra_args", config.player.extra_args)),
            startup_timeout=float(
                player_data.get("startup_timeout", config.player.startup_timeout)
            ),
            command_timeout=float(
                player_data.get("command_timeout", config.player.command_timeout)
            ),
            telemetry_timeout=float(
                player_data.get("telemetry_timeout", config.player.telemetry_timeout)
            ),
        )
        try:
            config.player.validate()
        except ValueError as e:
            print(f"Warning: Invalid player configuration: {e}")
            print("Using default player configuration.")
            config.player = PlayerConfig()

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get("backup_count", config.logging.backup_count),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )
        try:
            config.logging.validate()
        except ValueError as e:
            print(f"Warning: Invalid logging configuration: {e}")
            print("Using default logging configuration.")
            config.logging = LoggingConfig()

    return config


def _apply_env_overrides(config: Config) -> Config:
    """Override socket paths and log level from the environment."""
    socket_path = os.environ.get("QUEUE_MINION_SOCKET")
    mpv_socket_path = os.environ.get("QUEUE_MINION_MPV_SOCKET")
    log_level = os.environ.get("QUEUE_MINION_LOG_LEVEL")

    if socket_path:
        config.daemon.socket_path = socket_path
    if mpv_socket_path:
        config.player.mpv_socket_path = mpv_socket_path
    if log_level and log_level.upper() in VALID_LOG_LEVELS:
        config.logging.level = log_level.upper()

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - QUEUE_MINION_SOCKET
    - QUEUE_MINION_MPV_SOCKET
    - QUEUE_MINION_LOG_LEVEL
    """
    # Load .env file from config directory if it exists
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    if config_path is None:
        config_path = get_config_path()

    if not config_path.exists():
        # Create config directory and default file
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                f.write(create_default_config())
            print(f"Created default configuration at: {config_path}")
        except OSError as e:
            print(f"Could not create default configuration at {config_path}: {e}")
        return _apply_env_overrides(Config())

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
        config = _parse_config(toml_data)
    except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
        print(f"Error loading configuration from {config_path}: {e}")
        print("Using default configuration.")
        config = Config()

    return _apply_env_overrides(config)


def ensure_directories(config: Optional[Config] = None) -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
    get_daemon_socket_path(config).parent.mkdir(parents=True, exist_ok=True)
    get_mpv_socket_path(config).parent.mkdir(parents=True, exist_ok=True)
    get_history_path(config).parent.mkdir(parents=True, exist_ok=True)
