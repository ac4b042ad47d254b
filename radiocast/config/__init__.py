"""
Configuration management for Radiocast.

This module loads the station configuration (asset directories, audio
utility settings, pacing and listener limits, web server address) from a
TOML file.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent


@dataclass
class StationConfig:
    """Loaded station configuration."""

    # Assets (relative paths resolve against the working directory)
    audio_directory: Path = Path("audio/songs")
    fx_directory: Path = Path("audio/fx")
    public_directory: Path = Path("public")
    default_source: str = "conversation.mp3"

    # Bitrate probing
    fallback_bitrate: int = 128000
    bits_per_byte: int = 8

    # Pacing and fan-out
    pacing_interval: float = 0.1
    listener_buffer_chunks: int = 64

    # External audio utility
    sox_binary: str = "sox"
    media_type: str = "mp3"
    channels: int = 2
    main_volume: float = 0.99
    fx_volume: float = 0.1
    utility_timeout: float = 5.0

    # Web server
    host: str = "0.0.0.0"
    port: int = 3000

    def __post_init__(self) -> None:
        self.audio_directory = Path(self.audio_directory)
        self.fx_directory = Path(self.fx_directory)
        self.public_directory = Path(self.public_directory)

        if self.bits_per_byte <= 0:
            raise ValueError("bits_per_byte must be positive")
        if self.fallback_bitrate < self.bits_per_byte:
            raise ValueError("fallback_bitrate is too low to stream")
        if self.pacing_interval <= 0:
            raise ValueError("pacing_interval must be positive")
        if self.listener_buffer_chunks <= 0:
            raise ValueError("listener_buffer_chunks must be positive")


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def parse_station_config(data: dict[str, Any]) -> StationConfig:
    """Build a StationConfig from parsed TOML data; missing keys keep defaults."""
    paths = _section(data, "paths")
    probe = _section(data, "probe")
    stream = _section(data, "stream")
    mixer = _section(data, "mixer")
    server = _section(data, "server")

    defaults = StationConfig()

    return StationConfig(
        audio_directory=Path(paths.get("audio", defaults.audio_directory)),
        fx_directory=Path(paths.get("fx", defaults.fx_directory)),
        public_directory=Path(paths.get("public", defaults.public_directory)),
        default_source=str(paths.get("default_source", defaults.default_source)),
        fallback_bitrate=int(probe.get("fallback_bitrate", defaults.fallback_bitrate)),
        bits_per_byte=int(probe.get("bits_per_byte", defaults.bits_per_byte)),
        pacing_interval=float(stream.get("pacing_interval", defaults.pacing_interval)),
        listener_buffer_chunks=int(stream.get("listener_buffer_chunks", defaults.listener_buffer_chunks)),
        sox_binary=str(mixer.get("binary", defaults.sox_binary)),
        media_type=str(mixer.get("media_type", defaults.media_type)),
        channels=int(mixer.get("channels", defaults.channels)),
        main_volume=float(mixer.get("main_volume", defaults.main_volume)),
        fx_volume=float(mixer.get("fx_volume", defaults.fx_volume)),
        utility_timeout=float(mixer.get("timeout", defaults.utility_timeout)),
        host=str(server.get("host", defaults.host)),
        port=int(server.get("port", defaults.port)),
    )


def load_station_config(config_path: Path | None = None) -> StationConfig:
    """
    Load station configuration from TOML file.

    Args:
        config_path: Path to station.toml. If None, uses default location.

    Returns:
        Loaded StationConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "station.toml"

    logger.debug("Loading station config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    return parse_station_config(data)


# Global singleton instance (lazy loaded)
_station_config: StationConfig | None = None


def get_station_config() -> StationConfig:
    """
    Get the global station configuration (lazy loaded singleton).

    Returns:
        The StationConfig instance.
    """
    global _station_config

    if _station_config is None:
        _station_config = load_station_config()

    return _station_config


def reload_station_config(config_path: Path | None = None) -> StationConfig:
    """
    Force reload of station configuration.

    Returns:
        The newly loaded StationConfig instance.
    """
    global _station_config
    _station_config = load_station_config(config_path)
    return _station_config
