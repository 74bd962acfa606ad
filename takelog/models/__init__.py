from takelog.models.base import Base
from takelog.models.log_sheet import LogSheetRecord
from takelog.models.project import ProjectRecord

__all__ = [
    "Base",
    "ProjectRecord",
    "LogSheetRecord",
]
