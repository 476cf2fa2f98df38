from .user import User
from .payment import Payment
from .withdrawal import Withdrawal
from .app_setting import AppSetting
from .trial_material import TrialMaterial

__all__ = [
    "User",
    "Payment",
    "Withdrawal",
    "AppSetting",
    "TrialMaterial",
]
