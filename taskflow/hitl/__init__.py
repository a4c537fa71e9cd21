"""Human-in-the-loop approval."""

from .approval import Approver, actions_requiring_approval, auto_approver, console_approver

__all__ = ["Approver", "actions_requiring_approval", "auto_approver", "console_approver"]
