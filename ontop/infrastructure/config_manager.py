"""Configuration Manager.

Validated configuration for the reconciliation engine, loaded from
environment variables (optionally via a ``.env`` file).

Architecture:
    - Infrastructure layer; the domain receives plain values, never this model
    - Type-safe configuration using Pydantic models
    - Fail-fast validation prevents runtime errors
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from ontop.domain.enums import PlatformMatchMode

logger = logging.getLogger(__name__)

ENV_PREFIX = "ONTOP_"


def load_environment_file(env_file: Optional[str] = None) -> Optional[str]:
    """Load a .env file into the environment without overriding set variables.

    Parameters:
        env_file: Explicit file, or None for the nearest .env above the working directory

    Returns:
        The file that was loaded, or None if there was none
    """
    env_file = env_file or find_dotenv(usecwd=True)
    if not env_file:
        return None
    load_dotenv(env_file)
    logger.debug(f"Loaded environment file {env_file}")
    return env_file


class EngineConfig(BaseModel):
    """Engine configuration model.

    Parameters:
        dataset_path: Initial four-bucket dataset loaded at session start
        export_dir: Directory default export files are written to
        composite_filename: File name for composite JSON exports
        csv_filename: File name for tabular CSV exports
        platform_match: How platform filters match the providers field
        max_batch_bytes: Largest import file accepted
        csv_delimiter: Delimiter for tabular exports
    """

    dataset_path: Optional[str] = Field("patients.json", description="Initial dataset file")
    export_dir: str = Field(".", description="Default export directory")
    composite_filename: str = Field("oonTop.json", description="Composite JSON export file name")
    csv_filename: str = Field("oonTop.csv", description="Tabular export file name")
    platform_match: PlatformMatchMode = Field(PlatformMatchMode.SUBSTRING)
    max_batch_bytes: int = Field(10 * 1024 * 1024, gt=0)
    csv_delimiter: str = Field(",", min_length=1, max_length=1)

    @field_validator("platform_match", mode="before")
    @classmethod
    def validate_platform_match(cls, v):
        """Accept mode names case-insensitively."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("dataset_path")
    @classmethod
    def blank_dataset_means_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v

    @property
    def composite_export_path(self) -> Path:
        return Path(self.export_dir) / self.composite_filename

    @property
    def csv_export_path(self) -> Path:
        return Path(self.export_dir) / self.csv_filename

    @classmethod
    def from_environment(cls, load_env_file: bool = True, env_file: Optional[str] = None) -> "EngineConfig":
        """Build configuration from ``ONTOP_*`` environment variables.

        Values from a .env file (``env_file``, or the nearest one above the
        working directory) are loaded first with python-dotenv; variables
        already set in the environment win.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value
        """
        if load_env_file:
            load_environment_file(env_file)

        values = {}
        for field_name in cls.model_fields:
            env_value = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if env_value is not None:
                values[field_name] = env_value

        config = cls(**values)
        logger.debug(f"Engine configuration loaded from environment ({len(values)} override(s))")
        return config
