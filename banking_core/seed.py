"""
Demo data seeding

Opens the two demo accounts when the store is empty:
Alice's savings (1000, 2% rate) and Bob's checking (500, overdraft 200).
"""

from typing import List

from .accounts import Account, AccountManager
from .logging_config import get_logger

logger = get_logger("banking_core.seed")


def seed_demo_data(account_manager: AccountManager) -> List[Account]:
    """Open the demo accounts unless accounts already exist; returns what was created"""
    if account_manager.list_accounts():
        logger.info("Accounts already present, skipping demo seed")
        return []

    created = [
        account_manager.open_savings("Alice", 1000, interest_rate=2.0),
        account_manager.open_checking("Bob", 500, overdraft_limit=200),
    ]
    logger.info("Seeded %d demo accounts", len(created))
    return created
