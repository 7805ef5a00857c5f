from backend.app.models.audit_log import AuditLog
from backend.app.models.enums import GiveawayStatus, ParticipantStatus, SelectionMode
from backend.app.models.giveaway import Giveaway
from backend.app.models.interest import Interest
from backend.app.models.invite import InviteUse
from backend.app.models.participant import Participant
from backend.app.models.shipping import ShippingRecord
from backend.app.models.support import Support
from backend.app.models.task import Task, TaskCompletion, TaskStart
from backend.app.models.user import User
from backend.app.models.winner import WinnerLog

__all__ = [
    "AuditLog",
    "Giveaway",
    "GiveawayStatus",
    "Interest",
    "InviteUse",
    "Participant",
    "ParticipantStatus",
    "SelectionMode",
    "ShippingRecord",
    "Support",
    "Task",
    "TaskCompletion",
    "TaskStart",
    "User",
    "WinnerLog",
]
