"""Configuration manager for loading and saving podcasts config."""

from pathlib import Path

import platformdirs
import yaml

from podcasts.config.schema import GlobalConfig
from podcasts.storage.metadata import ROAMING_METADATA_FILENAME
from podcasts.utils.errors import InvalidConfigError

APP_NAME = "podcasts"
CONFIG_FILENAME = "config.yaml"


def get_config_dir() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_data_dir() -> Path:
    return Path(platformdirs.user_data_dir(APP_NAME))


def resolve_storage_paths(config: GlobalConfig) -> tuple[Path, Path]:
    """Resolve the local storage directory and the roaming metadata file.

    Args:
        config: Loaded configuration

    Returns:
        Tuple of (storage directory, roaming metadata path)
    """
    data_dir = (config.storage.data_dir or get_data_dir()).expanduser()
    roaming_path = config.storage.roaming_path
    if roaming_path is None:
        roaming_path = data_dir / ROAMING_METADATA_FILENAME
    return data_dir, roaming_path.expanduser()


class ConfigManager:
    """Manages the podcasts configuration file."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the config manager.

        Args:
            config_dir: Optional custom config directory. Defaults to the platform config dir.
        """
        self.config_dir = config_dir or get_config_dir()
        self.config_file = self.config_dir / CONFIG_FILENAME

    def load_config(self) -> GlobalConfig:
        """Load and validate global configuration.

        Returns:
            Validated GlobalConfig instance

        Raises:
            InvalidConfigError: If config is invalid
        """
        if not self.config_file.exists():
            config = GlobalConfig()
            self.save_config(config)
            return config

        try:
            with open(self.config_file) as f:
                data = yaml.safe_load(f) or {}
            return GlobalConfig(**data)
        except Exception as e:
            raise InvalidConfigError(
                f"Invalid configuration in {self.config_file}: {e}"
            ) from e

    def save_config(self, config: GlobalConfig) -> None:
        """Save global configuration.

        Args:
            config: GlobalConfig instance to save
        """
        # Paths become strings, unset paths are omitted
        data = config.model_dump(mode="json", exclude_none=True)

        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def set_roaming_path(self, roaming_path: Path | None) -> GlobalConfig:
        """Update the roaming metadata location and save.

        Returns:
            The updated configuration
        """
        config = self.load_config()
        storage = config.storage.model_copy(update={"roaming_path": roaming_path})
        config = config.model_copy(update={"storage": storage})
        self.save_config(config)
        return config
