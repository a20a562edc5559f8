from .user import UserIdentity
from .user_plan import UserPlan
from .user_benefits import UserBenefits
from .referral import Referral
from .app_setting import AppSetting
from .course import Course

__all__ = [
    "UserIdentity",
    "UserPlan",
    "UserBenefits",
    "Referral",
    "AppSetting",
    "Course",
]
