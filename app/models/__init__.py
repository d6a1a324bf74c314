from app.models.admin_notification import AdminNotification
from app.models.failed_job import FailedJob
from app.models.profile import Profile
from app.models.staking_account import StakingAccount
from app.models.staking_config import StakingConfig
from app.models.staking_ledger import StakingLedgerEntry

__all__ = [
    "AdminNotification",
    "FailedJob",
    "Profile",
    "StakingAccount",
    "StakingConfig",
    "StakingLedgerEntry",
]
