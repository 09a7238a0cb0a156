"""
The config handler module provides functionality to read, write, and manage runtime settings.
"""
import inspect
import json
import os
from typing import Any, TypedDict, Literal, overload

__all__ = ['ConfigHandler']


class ConfigDict(TypedDict):
    export_directory: str
    media_cache_directory: str
    timestamp_backup_names: bool


BoolKeys = Literal['timestamp_backup_names']
StrKeys = Literal[
    'export_directory',
    'media_cache_directory',
]
ConfigKey = BoolKeys | StrKeys


def create_default_config() -> ConfigDict:
    """
    :return: The default configuration dictionary.
    """
    return ConfigDict(
            export_directory="",
            media_cache_directory="",
            timestamp_backup_names=True,
    )


class ConfigHandler:
    """
    A class to handle reading and writing the runtime configuration file.

    Unknown keys in the file are skipped, known keys with the wrong type are rejected.
    The file is created with defaults if it does not exist.
    """

    def __init__(self, config_file: str = "config.json") -> None:
        self.config_file = config_file
        self.config: ConfigDict = create_default_config()
        self.init_config: dict[str, Any] = {}
        self.ensure_exists()
        with open(self.config_file, "r", encoding="utf-8") as config_file:
            self.init_config = json.load(config_file)

        self.validate_config()

    def validate_config(self) -> None:
        if not isinstance(self.init_config, dict):
            raise ValueError("Config file must contain a JSON object")

        annotations = inspect.get_annotations(ConfigDict)
        for key, value in self.init_config.items():
            if not isinstance(key, str):
                raise ValueError(f"Config key '{key}' is not a string")
            if not isinstance(value, (int, bool, str)):
                raise ValueError(f"Config value for key '{key}' must be str, int or bool")

            if key not in annotations:
                print("Unknown config key: " + key + ", skipping...")
                continue

            expected_type = annotations[key]
            if not isinstance(value, expected_type):
                raise ValueError(f"Config value for key '{key}' must be of type {expected_type.__name__}")

            self.config[key] = value  # type: ignore

    @overload
    def __getitem__(self, key: BoolKeys) -> bool:
        ...

    @overload
    def __getitem__(self, key: StrKeys) -> str:
        ...

    def __getitem__(self, key: ConfigKey) -> bool | str:
        if not isinstance(key, str):
            raise TypeError("Config keys must be strings")
        return self.config[key]  # type: ignore

    @overload
    def __setitem__(self, key: BoolKeys, value: bool) -> None:
        ...

    @overload
    def __setitem__(self, key: StrKeys, value: str) -> None:
        ...

    def __setitem__(self, key: ConfigKey, value: bool | str) -> None:
        if key not in self.config:
            raise KeyError(f"Unknown config key '{key}'")
        expected_type = type(self.config[key])  # type: ignore
        if not isinstance(value, expected_type):
            raise TypeError(f"Config value for key '{key}' must be of type {expected_type.__name__}")
        self.config[key] = value  # type: ignore

    def save(self) -> tuple[bool, str]:
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self.config, f, indent=4)
            return True, ""
        except PermissionError:
            return False, "Insufficient permissions to write config file"
        except OSError as e:
            return False, str(e)

    def ensure_exists(self) -> tuple[bool, str]:
        if not os.path.exists(self.config_file):
            return self.save()
        return True, ""

    def reload(self) -> tuple[bool, str]:
        if not os.path.exists(self.config_file):
            return False, "Config file does not exist"
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                self.init_config = json.load(f)
            self.validate_config()
            return True, ""
        except json.JSONDecodeError:
            return False, "Config file is not valid JSON"
        except ValueError as e:
            return False, str(e)

    def __str__(self) -> str:
        return json.dumps(self.config, indent=4)
