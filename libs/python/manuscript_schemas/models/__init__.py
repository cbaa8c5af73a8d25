from .analysis import ManuscriptSection, SectionAnalysis
from .assets import REQUIRED_KEYWORD_COUNT, AgentError, AssetBundle
from .costs import Attribution, CostEntry, CostSummaryRow
from .jobs import AnalysisJobPayload, JobRecord
from .records import ManuscriptRecord, UserRecord
from .status import StatusRecord

__all__ = [
    "AgentError",
    "AnalysisJobPayload",
    "AssetBundle",
    "Attribution",
    "CostEntry",
    "CostSummaryRow",
    "JobRecord",
    "ManuscriptRecord",
    "ManuscriptSection",
    "REQUIRED_KEYWORD_COUNT",
    "SectionAnalysis",
    "StatusRecord",
    "UserRecord",
]
