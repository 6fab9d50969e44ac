"""
Configuration module for Paranoia Python Toolkit.

Provides centralized defaults for soft delete registration and engine behavior.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union, get_args, get_origin

from pydantic import BaseModel, Field, ValidationError, field_validator


class ColumnType(str, Enum):
    """Encoding schemes for the soft delete marker column."""

    TIMESTAMP = "timestamp"  # NULL = live, deletion time = deleted
    FLAG = "boolean"  # False = live, True = deleted

    @classmethod
    def _missing_(cls, value: object) -> Optional["ColumnType"]:
        aliases = {"datetime": cls.TIMESTAMP, "flag": cls.FLAG, "bool": cls.FLAG}
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
            return aliases.get(value.lower())
        return None


class ParanoiaConfig(BaseModel):
    """Central configuration for soft delete behavior.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (PARANOIA_ prefix)
        3. Default values (lowest priority)

    Example:
        >>> config = ParanoiaConfig(
        ...     default_column="removed_at",
        ...     cascade_restore=True,
        ... )

        >>> import os
        >>> os.environ['PARANOIA_DEFAULT_COLUMN_TYPE'] = 'boolean'
        >>> config = ParanoiaConfig.from_env()

    Note:
        Registries read the defaults when a type is registered. Changing the
        configuration later does not reconfigure types already registered.
    """

    # General settings
    application_name: str = Field(
        "Paranoid Application", description="Name of the application for logs"
    )
    environment: str = Field(
        "production", description="Environment (development, staging, production)"
    )

    # Registration defaults
    default_column: str = Field(
        "deleted_at", description="Marker column used when a type declares none"
    )
    default_column_type: ColumnType = Field(
        ColumnType.TIMESTAMP, description="Marker scheme used when a type declares none"
    )
    use_utc: bool = Field(True, description="Write timezone-aware UTC deletion times")

    # Engine behavior
    cascade_restore: bool = Field(
        False, description="Cascade restores to dependents unless told otherwise"
    )
    guard_hard_delete: bool = Field(
        False, description="Block session.delete() on paranoid records"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("default_column")
    @classmethod
    def validate_default_column(cls, v: str) -> str:
        """Ensure the default marker column is an attribute name."""
        if not v.strip().isidentifier():
            raise ValueError(f"Default column must be an attribute name, got {v!r}")
        return v.strip()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_env(cls, prefix: str = "PARANOIA_") -> "ParanoiaConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        import os

        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]

                field_type = field_info.annotation

                # Handle Optional types
                if get_origin(field_type) is Union:
                    args = get_args(field_type)
                    field_type = next(
                        (arg for arg in args if arg is not type(None)), str
                    )

                try:
                    if field_type == bool:
                        config_dict[field_name] = value.lower() in (
                            "true",
                            "1",
                            "yes",
                            "on",
                        )
                    elif isinstance(field_type, type) and issubclass(field_type, Enum):
                        config_dict[field_name] = field_type(value)
                    else:
                        config_dict[field_name] = value
                except (ValueError, TypeError):
                    # Leave the raw value for model validation to reject
                    config_dict[field_name] = value

        return cls.model_validate(config_dict)


# Global configuration instance
_config: Optional[ParanoiaConfig] = None


def get_config() -> ParanoiaConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        try:
            _config = ParanoiaConfig.from_env()
        except ValidationError:
            # Fall back to default configuration
            _config = ParanoiaConfig.model_validate({})

    return _config


def set_config(config: Optional[ParanoiaConfig]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set, or None to reload from the environment
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> ParanoiaConfig:
    """
    Configure the toolkit with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = ParanoiaConfig(**kwargs)
    else:
        config_dict = _config.to_dict()
        config_dict.update(kwargs)
        _config = ParanoiaConfig(**config_dict)

    return _config
