import os

__all__ = []


def ensure_config_exists():
    """Generate default configs.py if it doesn't exist."""
    if os.path.exists(os.path.join(os.path.dirname(os.path.abspath(__file__)), "configs.py")):
        return

    default_config = '''"""
Generated default configuration file for the crypto engine.
"""
BACKUP_FILE_HEADER = "Foxtrot encrypted keys"
PBKDF2_ITERATIONS = 600000
MIN_PBKDF2_ITERATIONS = 100000
MAX_PBKDF2_ITERATIONS = 10000000
PBKDF2_SALT_LENGTH = 16
LOG_BUFFER_SIZE = 200
'''

    with open(os.path.join(os.path.dirname(os.path.abspath(__file__)), "configs.py"), "w") as f:
        f.write(default_config)

    print("Generated default configs.py")


# Ensure config exists before anything imports it
try:
    ensure_config_exists()
except PermissionError as e:
    raise PermissionError("Could not create configs.py, please create it manually or contact the developer.") from e
except OSError as e:
    raise OSError("Could not create configs.py, please create it manually or contact the developer.") from e


def validate_configs() -> None:
    """Validate configuration settings."""
    try:
        import configs
    except ImportError as e:
        raise ImportError("configs.py could not be created. Contact the developer.") from e

    if not isinstance(configs.BACKUP_FILE_HEADER, str) or not configs.BACKUP_FILE_HEADER:
        raise ValueError("BACKUP_FILE_HEADER must be a non-empty string")

    if "\n" in configs.BACKUP_FILE_HEADER or "\r" in configs.BACKUP_FILE_HEADER:
        raise ValueError("BACKUP_FILE_HEADER must fit on a single line")

    if not isinstance(configs.PBKDF2_ITERATIONS, int) or configs.PBKDF2_ITERATIONS < 1000:
        raise ValueError("PBKDF2_ITERATIONS must be a number of at least 1000")

    if not isinstance(configs.MIN_PBKDF2_ITERATIONS, int) or configs.MIN_PBKDF2_ITERATIONS <= 0:
        raise ValueError("MIN_PBKDF2_ITERATIONS must be a positive number")

    if not isinstance(configs.MAX_PBKDF2_ITERATIONS, int) or configs.MAX_PBKDF2_ITERATIONS < configs.PBKDF2_ITERATIONS:
        raise ValueError("MAX_PBKDF2_ITERATIONS must be a number no smaller than PBKDF2_ITERATIONS")

    if configs.MIN_PBKDF2_ITERATIONS > configs.PBKDF2_ITERATIONS:
        print("Warning: MIN_PBKDF2_ITERATIONS is higher than PBKDF2_ITERATIONS, new backups will warn on import")

    if not isinstance(configs.PBKDF2_SALT_LENGTH, int) or not 16 <= configs.PBKDF2_SALT_LENGTH <= 64:
        raise ValueError("PBKDF2_SALT_LENGTH must be between 16 and 64 bytes")

    if not isinstance(configs.LOG_BUFFER_SIZE, int) or configs.LOG_BUFFER_SIZE <= 0:
        raise ValueError("LOG_BUFFER_SIZE must be a positive number")


validate_configs()
