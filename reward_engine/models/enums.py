# Enum definitions shared by models, schemas and services.
# Columns store the plain string value.
from enum import Enum


class ProgramStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class PolicyType(str, Enum):
    OVERTIME = "OVERTIME"
    NOT_LATE = "NOT_LATE"
    FULL_ATTENDANCE = "FULL_ATTENDANCE"


class WalletRole(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"


class TransactionType(str, Enum):
    POLICY_REWARD = "POLICY_REWARD"
    GIFT = "GIFT"
    EXCHANGE = "EXCHANGE"


class JobType(str, Enum):
    RESET_BUDGETS = "RESET_BUDGETS"


# RewardItem.quantity sentinel for unlimited stock
UNLIMITED_QUANTITY = -1
