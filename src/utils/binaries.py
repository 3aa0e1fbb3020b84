"""Absolute paths for the programs run through sudo.

Names are looked up on sudo's default ``secure_path`` rather than the
caller's PATH, so a writable directory early in PATH cannot swap in a
different ``fail2ban-client`` (bandit B607). Results are cached per name.
"""

import os
import shutil
from typing import Dict, Optional

SECURE_PATH = os.pathsep.join([
    "/usr/local/sbin",
    "/usr/local/bin",
    "/usr/sbin",
    "/usr/bin",
    "/sbin",
    "/bin",
])

# Used when the lookup fails, e.g. inside a minimal container image
KNOWN_LOCATIONS = {
    'sudo': '/usr/bin/sudo',
    'systemctl': '/usr/bin/systemctl',
    'fail2ban-client': '/usr/bin/fail2ban-client',
}

_resolved: Dict[str, Optional[str]] = {}


def get_binary(name: str) -> Optional[str]:
    """Resolve ``name`` to an absolute path.

    Absolute paths (e.g. a configured sync script) are returned unchanged.

    Returns:
        The path, or None if the program cannot be found.
    """
    if name in _resolved:
        return _resolved[name]

    if os.path.isabs(name):
        path: Optional[str] = name
    else:
        path = shutil.which(name, path=SECURE_PATH) or KNOWN_LOCATIONS.get(name)

    _resolved[name] = path
    return path


def clear_cache() -> None:
    """Forget resolved paths (tests and config reloads)."""
    _resolved.clear()
