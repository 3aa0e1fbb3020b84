"""Wire the services together from an AppConfig."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from config import AppConfig
from database import WhitelistRepository, create_db_engine, init_db, session_factory
from models.fail2ban import JailStatus
from services.fail2ban_service import Fail2banService, default_actor
from services.runner import CommandRunner, SudoCommandRunner
from services.whitelist_manager import WhitelistManager
from services.whitelist_sync import WhitelistReconciler, build_reconciler
from utils.status_cache import StatusCache


@dataclass
class Services:
    config: AppConfig
    runner: CommandRunner
    fail2ban: Fail2banService
    repository: WhitelistRepository
    reconciler: WhitelistReconciler
    whitelist: WhitelistManager
    status_cache: StatusCache

    def cached_status(self) -> JailStatus:
        """Jail status through the shared short-TTL cache."""
        return self.status_cache.get(self.fail2ban.get_status)


def build_services(
    config: AppConfig,
    runner: Optional[CommandRunner] = None,
    engine: Optional[Engine] = None,
    actor: Optional[str] = None,
) -> Services:
    """Create every collaborator; ``runner`` and ``engine`` can be injected for tests."""
    runner = runner or SudoCommandRunner(config.jail.privileged_exec, config.jail.command_timeout)
    engine = engine or create_db_engine(config.database.url)
    init_db(engine)

    actor = actor or default_actor()
    repository = WhitelistRepository(session_factory(engine))
    reconciler = build_reconciler(config, repository, runner)
    return Services(
        config=config,
        runner=runner,
        fail2ban=Fail2banService(config.jail, runner, actor=actor),
        repository=repository,
        reconciler=reconciler,
        whitelist=WhitelistManager(repository, reconciler, actor=actor),
        status_cache=StatusCache(config.dashboard.status_cache_ttl),
    )
