from .command_mixin import CommandMixin
from .message_mixin import MessageMixin
from .report_mixin import ReportMixin
from .reversal_mixin import ReversalMixin

__all__ = [
    "CommandMixin",
    "MessageMixin",
    "ReportMixin",
    "ReversalMixin",
]
