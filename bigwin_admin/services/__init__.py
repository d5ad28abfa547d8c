"""
Business services for the admin backend.
"""

from .scope import CallerIdentity, ScopeResolver, can_act_on
from .approval_service import ApprovalService
from .withdrawal_service import WithdrawalService
from .admin_views import AdminViewService
from .account_service import AccountService
from .email_service import EmailService
from .credentials_notifier import CredentialsNotifier

__all__ = [
    "CallerIdentity",
    "ScopeResolver",
    "can_act_on",
    "ApprovalService",
    "WithdrawalService",
    "AdminViewService",
    "AccountService",
    "EmailService",
    "CredentialsNotifier",
]
