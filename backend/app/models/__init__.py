from .base import Base
from .directory import Restaurant, User
from .template import AuditTemplate, AuditItem
from .execution import AuditExecution, AuditResponse
from .finding import NonConformity
from .corrective_action import CorrectiveAction
from .archive import AuditArchive
from .change_log import ChangeLog

__all__ = [
    "Base",
    "Restaurant", "User",
    "AuditTemplate", "AuditItem",
    "AuditExecution", "AuditResponse",
    "NonConformity",
    "CorrectiveAction",
    "AuditArchive",
    "ChangeLog",
]
