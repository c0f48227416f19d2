"""Application Settings and Configuration.

This module provides application-wide settings that combine the engine
configuration with application-specific defaults read from the environment.
A ``.env`` file, if one is found, is loaded before any variable is read.
"""

import os
from typing import Optional

from ontop.infrastructure.config_manager import EngineConfig, load_environment_file

# Application metadata
APP_NAME = "Ontop-Health"
APP_VERSION = "1.0.0"


class Settings:
    """Application settings loaded from the environment.

    Engine configuration is validated lazily on first access so that a bad
    variable only fails the commands that need it.
    """

    def __init__(self, load_env_file: bool = True, env_file: Optional[str] = None):
        """Initialize settings from environment.

        Parameters:
            load_env_file: Load a .env file before reading variables
            env_file: Explicit .env file (default: nearest one above the working directory)
        """
        self._load_env_file = load_env_file
        self._env_file = env_file
        self._engine_config: Optional[EngineConfig] = None

        if load_env_file:
            load_environment_file(env_file)

        self.app_name = os.getenv("ONTOP_APP_NAME", APP_NAME)

        # Logging
        self.log_level = os.getenv("ONTOP_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("ONTOP_LOG_JSON", "false").lower() == "true"

    @property
    def engine_config(self) -> EngineConfig:
        """Get engine configuration.

        Returns:
            EngineConfig instance loaded from the environment
        """
        if self._engine_config is None:
            self._engine_config = EngineConfig.from_environment(
                load_env_file=self._load_env_file,
                env_file=self._env_file,
            )
        return self._engine_config

    def reload(self) -> None:
        """Re-read the environment (used by tests and long-lived shells)."""
        self.__init__(load_env_file=self._load_env_file, env_file=self._env_file)


# Global settings instance
settings = Settings()
