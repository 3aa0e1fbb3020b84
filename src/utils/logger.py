"""
Logging for SBC Guard.

Everything logs under the ``sbcguard`` logger tree. Output goes to a
rotating file, stdout or the local syslog (``LOG_DEST=file|stdout|syslog``)
as text or JSON lines (``LOG_FORMAT=text|json``); ``LOG_LEVEL`` overrides
the level passed by the caller.

Ban, unban and whitelist changes are written through ``audit()`` so that in
JSON mode the acting user, target IP and jail are separate fields.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler, SysLogHandler
from typing import Optional

from pythonjsonlogger import jsonlogger

from const import LOG_FILE, LOGGER_PREFIX

TEXT_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s] - %(message)s'
TEXT_DATEFMT = '%Y-%m-%d %H:%M:%S'
JSON_FIELDS = '%(asctime)s %(levelname)s %(name)s %(message)s'
SYSLOG_SOCKET = '/dev/log'

LOG_MAX_BYTES = 1 * 1024 * 1024
LOG_BACKUPS = 10


def _build_handler(log_file: str, dest: str) -> logging.Handler:
    if dest == 'stdout':
        return logging.StreamHandler(sys.stdout)
    if dest == 'syslog':
        address = SYSLOG_SOCKET if os.path.exists(SYSLOG_SOCKET) else ('localhost', 514)
        handler = SysLogHandler(address=address, facility=SysLogHandler.LOG_AUTH)
        handler.ident = f"{LOGGER_PREFIX}: "
        return handler

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    return RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding='utf-8')


def _build_formatter(fmt: str, dest: str) -> logging.Formatter:
    if fmt == 'json':
        return jsonlogger.JsonFormatter(JSON_FIELDS, timestamp=True)
    if dest == 'syslog':
        # syslog adds its own timestamp and host
        return logging.Formatter('%(levelname)s [%(name)s] %(message)s')
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def setup_logging(log_file: str = LOG_FILE, level: int = logging.INFO) -> None:
    """
    Configure the ``sbcguard`` logger. Safe to call more than once.

    Args:
        log_file: Rotating log file used when LOG_DEST is ``file``.
        level: Default level; ``LOG_LEVEL`` (e.g. ``DEBUG``) wins if set.
    """
    dest = os.getenv('LOG_DEST', 'file').lower()
    fmt = os.getenv('LOG_FORMAT', 'text').lower()
    env_level = os.getenv('LOG_LEVEL')
    if env_level:
        level = logging.getLevelName(env_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = _build_handler(log_file, dest)
    handler.setFormatter(_build_formatter(fmt, dest))

    logger = logging.getLogger(LOGGER_PREFIX)
    logger.setLevel(level)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    logger.propagate = False


def setup_exception_logging() -> None:
    """Route uncaught exceptions to the log instead of only stderr."""
    logger = get_logger("exception_handler")

    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.error("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the app prefix."""
    # Create the app logger first so children never start out parented to root
    logging.getLogger(LOGGER_PREFIX)
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def audit(
    logger: logging.Logger,
    action: str,
    *,
    user: str,
    ip: Optional[str] = None,
    jail: Optional[str] = None,
    ok: bool = True,
    detail: Optional[str] = None,
    level: Optional[int] = None,
) -> None:
    """
    Log one operator action.

    The text line reads ``<action> succeeded|failed: ip=.. jail=.. user=..``
    (``jail`` left out when not given) followed by ``detail``; the same values are attached as ``user``, ``ip``,
    ``jail``, ``action`` and ``ok`` record attributes for the JSON formatter.
    Failures log at ERROR, successes at INFO unless ``level`` is given.
    """
    target = ip or "*"
    fields = f"ip={target} jail={jail} user={user}" if jail else f"ip={target} user={user}"
    message = f"{action} {'succeeded' if ok else 'failed'}: {fields}"
    if detail:
        message = f"{message} {detail}"
    if level is None:
        level = logging.INFO if ok else logging.ERROR
    logger.log(
        level,
        message,
        extra={"action": action, "user": user, "ip": target, "jail": jail, "ok": ok},
    )
