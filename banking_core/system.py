"""
Banking System Wiring

Builds the storage backend named by the configuration and the components
that sit on top of it.
"""

from typing import Optional

from .accounts import AccountManager
from .config import BankingConfig, get_config
from .logging_config import get_logger, setup_logging
from .mutations import AccountMutationService
from .seed import seed_demo_data
from .storage import InMemoryStorage, SQLiteStorage, StorageBackend


def create_storage(config: BankingConfig) -> StorageBackend:
    """Instantiate the configured storage backend"""
    if config.storage_backend == "sqlite":
        return SQLiteStorage(config.database_path)
    return InMemoryStorage()


class BankingSystem:
    """Banking core with all components initialized"""

    def __init__(
        self,
        config: Optional[BankingConfig] = None,
        storage: Optional[StorageBackend] = None,
        configure_logging: bool = False
    ):
        self.config = config or get_config()
        if configure_logging:
            setup_logging(self.config.log_level, self.config.log_format)
        self.logger = get_logger("banking_core.system")

        self.storage = storage or create_storage(self.config)
        self.account_manager = AccountManager(
            self.storage,
            default_savings_rate=self.config.default_savings_rate,
            default_checking_overdraft=self.config.default_checking_overdraft
        )
        self.mutations = AccountMutationService(self.storage)

        self.logger.info("Banking system started with %s storage", type(self.storage).__name__)

        if self.config.seed_demo_data:
            seed_demo_data(self.account_manager)

    def close(self) -> None:
        self.storage.close()

    def __enter__(self) -> 'BankingSystem':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
