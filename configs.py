"""
Here are some general settings for the crypto engine.
Each setting has a comment explaining what it does and its default value below it.

These are settings that are not intended to be changed during runtime.
They can be changed during runtime, but it may not work as expected.

You may also delete the file entirely to reset to defaults.
Note that the generated file will not include comments and may be ordered and formatted differently.
"""
from typing import Final

false = no = off = No = Off = False
true = yes = on = Yes = On = True

### KEY BACKUP
BACKUP_FILE_HEADER: Final[str] = "Foxtrot encrypted keys"
# First line of every exported key backup file.
# Only written, never checked on import, so changing it does not break old backups.
# Default: "Foxtrot encrypted keys"

PBKDF2_ITERATIONS: Final[int] = 600000
# Number of PBKDF2-SHA256 iterations used when exporting keys.
# The count is stored in the backup file, so raising it does not break old backups.
# Higher is slower to export/import but harder to brute force.
# Default: 600000
# Range: 1000 - 10000000

MIN_PBKDF2_ITERATIONS: Final[int] = 100000
# Backups with fewer iterations than this still import, but a warning is issued.
# Default: 100000

MAX_PBKDF2_ITERATIONS: Final[int] = 10000000
# Backups claiming more iterations than this are rejected outright.
# Stops a crafted file from keeping the CPU busy for hours.
# Default: 10000000

PBKDF2_SALT_LENGTH: Final[int] = 16
# Length in bytes of the random PBKDF2 salt.
# Default: 16
# Range: 16 - 64


### DIAGNOSTICS
LOG_BUFFER_SIZE: Final[int] = 200
# Number of log entries kept in memory for "copy logs" style reports.
# Oldest entries are dropped first.
# Default: 200
# Range: 1 - 10000
