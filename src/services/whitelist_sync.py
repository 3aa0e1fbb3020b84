"""
Whitelist Sync - push the whitelist table into the jail's ignoreip.

Two strategies share one interface:

- ConfigPatchReconciler rewrites the ``ignoreip`` directive in the jail's
  config file and restarts fail2ban.
- ScriptReconciler hands the job to an external sync script that reads the
  database itself.

Exactly one is built per deployment (see build_reconciler). Both return a
bool from sync() and never raise.
"""

import fcntl
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from config import AppConfig, DatabaseSettings, JailSettings, SyncSettings
from const import SYNC_SCRIPT_ENV
from database.whitelist import WhitelistRepository
from services.runner import CommandRunner
from utils.logger import get_logger

logger = get_logger("whitelist_sync")

IGNOREIP_RE = re.compile(r"^ignoreip\s*=\s*(.*)$")
COMMENT_PREFIX = "# whitelist: "

# One lock per lock file: the thread lock orders callers inside this
# process, the flock on the sidecar file orders the CLI against the dashboard
_file_locks: Dict[str, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: str) -> threading.Lock:
    key = os.path.abspath(path)
    with _file_locks_guard:
        if key not in _file_locks:
            _file_locks[key] = threading.Lock()
        return _file_locks[key]


def default_lock_path(config_path: str) -> str:
    """Sidecar lock file next to the jail config (fail2ban ignores ``*.lock``)."""
    return f"{os.path.abspath(config_path)}.lock"


@contextmanager
def sync_lock(lock_path: str) -> Iterator[None]:
    """
    Hold the sync lock for ``lock_path`` across threads and processes.

    Raises:
        OSError: The lock file cannot be opened or locked.
    """
    with _lock_for(lock_path):
        with open(lock_path, "a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


# =========================================================================
# Config file patching
# =========================================================================

def render_ignoreip(entries: Iterable[Tuple[str, Optional[str]]]) -> Tuple[str, List[str]]:
    """
    Build the ignoreip value and the per-entry comment lines.

    Args:
        entries: (ip_or_cidr, comment) pairs in table order.

    Returns:
        (value, comment_lines). Entries without a comment get no comment line.
    """
    ips: List[str] = []
    comments: List[str] = []
    for ip, comment in entries:
        ips.append(ip)
        if comment:
            text = " ".join(comment.split())
            comments.append(f"{COMMENT_PREFIX}{ip} - {text}")
    return " ".join(ips), comments


def _is_continuation(line: str) -> bool:
    """Indented non-blank line: a continuation of the previous value."""
    return bool(line.strip()) and line[:1] in (" ", "\t") and not line.lstrip().startswith(("#", ";"))


def _strip_directive_block(lines: List[str], index: int) -> int:
    """Return the index just past the directive, its continuations and its managed comments."""
    end = index + 1
    while end < len(lines) and _is_continuation(lines[end]):
        end += 1
    while end < len(lines) and lines[end].startswith(COMMENT_PREFIX):
        end += 1
    return end


def patch_config(text: str, value: str, comment_lines: Sequence[str] = (), anchor: Optional[str] = None) -> str:
    """
    Replace (or insert) the ``ignoreip`` directive in a jail config.

    Every existing ``ignoreip`` line is removed together with its continuation
    lines and the managed comment block below it; a single directive is
    written back where the first one was. If there is none, it goes right
    after ``anchor`` (a section header such as ``[opensips-brute-force]``),
    or at the end of the file under a new ``anchor`` section when the anchor
    is missing. Everything else is kept byte-for-byte.
    """
    newline = "\r\n" if "\r\n" in text else "\n"
    block = [f"ignoreip = {value}".rstrip() + newline]
    block.extend(line + newline for line in comment_lines)

    lines = text.splitlines(keepends=True)
    result: List[str] = []
    inserted = False
    i = 0
    while i < len(lines):
        line = lines[i]
        if IGNOREIP_RE.match(line.rstrip("\r\n")):
            if not inserted:
                result.extend(block)
                inserted = True
            i = _strip_directive_block(lines, i)
            continue
        result.append(line)
        i += 1

    if inserted:
        return "".join(result)

    if anchor:
        for idx, line in enumerate(result):
            if line.strip() == anchor:
                if not line.endswith(("\n", "\r")):
                    result[idx] = line + newline
                return "".join(result[: idx + 1] + block + result[idx + 1:])

    if result and not result[-1].endswith(("\n", "\r")):
        result[-1] += newline
    if anchor:
        if result and result[-1].strip():
            result.append(newline)
        result.append(anchor + newline)
    return "".join(result + block)


def read_ignoreip(text: str) -> List[str]:
    """Parse the ignoreip value (including continuation lines) from config text."""
    lines = text.splitlines()
    for idx, line in enumerate(lines):
        match = IGNOREIP_RE.match(line)
        if not match:
            continue
        values = match.group(1).split()
        for cont in lines[idx + 1:]:
            if not _is_continuation(cont):
                break
            values.extend(cont.split())
        return values
    return []


def atomic_write(path: Path, content: str) -> None:
    """Write content via a temp file in the same directory and rename it over ``path``."""
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        if path.exists():
            os.chmod(tmp_path, path.stat().st_mode & 0o7777)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


# =========================================================================
# Reconcilers
# =========================================================================

class WhitelistReconciler(ABC):
    """Makes the jail's ignore list match the whitelist table."""

    strategy = ""

    def __init__(
        self,
        repository: WhitelistRepository,
        jail: JailSettings,
        runner: CommandRunner,
        lock_path: Optional[str] = None,
    ):
        self.repository = repository
        self.jail = jail
        self.runner = runner
        self.lock_path = lock_path or default_lock_path(jail.config_path)
        self.last_error: Optional[str] = None

    def sync(self) -> bool:
        """
        Reconcile and activate.

        Only one sync per lock file runs at a time, whether the other caller
        is a thread here or another sbcguard process.

        Returns:
            True only if reading the table, changing the config and
            activating the change all succeeded. Failures are logged and
            reported as False; this method does not raise.
        """
        self.last_error = None
        try:
            with sync_lock(self.lock_path):
                return self._sync_once()
        except OSError as e:
            return self._fail("Cannot lock whitelist sync", step="lock", path=self.lock_path, error=str(e))

    def _sync_once(self) -> bool:
        try:
            ok = self._sync_locked()
        except Exception as e:
            logger.error(f"Whitelist sync ({self.strategy}) failed unexpectedly: {e}", exc_info=True)
            self.last_error = str(e)
            return False
        if ok:
            logger.info(f"Whitelist synced ({self.strategy}) for jail {self.jail.name}")
        return ok

    @abstractmethod
    def _sync_locked(self) -> bool:
        """Do the work; called with the sync lock held."""

    def _fail(self, message: str, **context) -> bool:
        details = " ".join(f"{k}={v!r}" for k, v in context.items())
        logger.error(f"{message}: {details}" if details else message)
        self.last_error = message
        return False

    def current_ignore_list(self) -> List[str]:
        """IPs currently in the jail config's ignoreip, empty if the file or line is missing."""
        path = Path(self.jail.config_path)
        if not path.exists():
            return []
        try:
            return read_ignoreip(path.read_text(encoding="utf-8"))
        except OSError as e:
            logger.warning(f"Cannot read {path}: {e}")
            return []

    def drift(self) -> Dict[str, List[str]]:
        """Compare table and config: ``missing`` from config, ``extra`` in config."""
        table = [e.ip_or_cidr for e in self.repository.all()]
        config = self.current_ignore_list()
        return {
            "missing": [ip for ip in table if ip not in config],
            "extra": [ip for ip in config if ip not in table],
        }


class ConfigPatchReconciler(WhitelistReconciler):
    """
    Rewrites ignoreip in the jail config file, then restarts fail2ban.

    The process needs write access to the jail config file; the restart goes
    through the privileged runner.
    """

    strategy = "patch"

    def __init__(
        self,
        repository: WhitelistRepository,
        jail: JailSettings,
        runner: CommandRunner,
        comment_lines: bool = True,
        anchor: Optional[str] = None,
        lock_path: Optional[str] = None,
    ):
        super().__init__(repository, jail, runner, lock_path)
        self.comment_lines = comment_lines
        self.anchor = anchor or jail.anchor

    def _sync_locked(self) -> bool:
        entries = [(e.ip_or_cidr, e.comment) for e in self.repository.all()]
        value, comments = render_ignoreip(entries)

        path = Path(self.jail.config_path)
        try:
            original = path.read_text(encoding="utf-8")
        except OSError as e:
            return self._fail("Cannot read jail config", step="read", path=str(path), error=str(e))

        patched = patch_config(original, value, comments if self.comment_lines else (), self.anchor)

        if patched != original:
            try:
                atomic_write(path, patched)
            except OSError as e:
                return self._fail("Cannot write jail config", step="write", path=str(path), error=str(e))
            logger.info(f"Updated ignoreip in {path}: {len(entries)} entries")
        else:
            logger.debug(f"ignoreip in {path} already up to date")

        result = self.runner.run(list(self.jail.restart_command), timeout=self.jail.command_timeout)
        if not result.successful:
            return self._fail(
                "Fail2ban restart failed after whitelist update",
                step="restart",
                command=" ".join(self.jail.restart_command),
                exit_code=result.exit_code,
                stdout=result.stdout.strip(),
                stderr=result.stderr.strip(),
            )
        return True


class ScriptReconciler(WhitelistReconciler):
    """Delegates the sync to an external script that reads the database itself."""

    strategy = "script"

    def __init__(
        self,
        repository: WhitelistRepository,
        jail: JailSettings,
        runner: CommandRunner,
        database: DatabaseSettings,
        script_path: Optional[str] = None,
        search_paths: Sequence[str] = (),
        lock_path: Optional[str] = None,
    ):
        super().__init__(repository, jail, runner, lock_path)
        self.database = database
        self.script_path = script_path
        self.search_paths = tuple(search_paths)

    def resolve_script(self) -> Optional[str]:
        """Override path first, then the conventional install locations."""
        override = self.script_path or os.getenv(SYNC_SCRIPT_ENV)
        if override and os.path.isfile(override):
            return override
        for candidate in self.search_paths:
            if os.path.isfile(candidate):
                return candidate
        return None

    def _sync_locked(self) -> bool:
        script = self.resolve_script()
        if script is None:
            return self._fail(
                "Fail2ban sync script not found",
                step="resolve",
                override=self.script_path or os.getenv(SYNC_SCRIPT_ENV),
                searched=list(self.search_paths),
            )

        # Credentials go through the environment only, never argv
        env = {
            "DB_NAME": self.database.name or "",
            "DB_USER": self.database.user or "",
            "DB_PASS": self.database.password or "",
        }
        result = self.runner.run([script], env=env, timeout=self.jail.command_timeout)
        if not result.successful:
            return self._fail(
                "Whitelist sync script failed",
                step="script",
                script=script,
                exit_code=result.exit_code,
                stdout=result.stdout.strip(),
                stderr=result.stderr.strip(),
            )

        logger.info(f"Sync script {script} finished: {self.repository.count()} entries, output={result.stdout.strip()!r}")
        return True


def build_reconciler(config: AppConfig, repository: WhitelistRepository, runner: CommandRunner) -> WhitelistReconciler:
    """Create the reconciler selected by ``sync.strategy``."""
    sync: SyncSettings = config.sync
    if sync.strategy == "script":
        return ScriptReconciler(
            repository,
            config.jail,
            runner,
            config.database,
            script_path=sync.script_path,
            search_paths=sync.script_search_paths,
            lock_path=sync.lock_path,
        )
    return ConfigPatchReconciler(
        repository,
        config.jail,
        runner,
        comment_lines=sync.comment_lines,
        anchor=sync.anchor,
        lock_path=sync.lock_path,
    )
