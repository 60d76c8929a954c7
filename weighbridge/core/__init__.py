from weighbridge.core.models import Reading, ConnectionStatus, WeighingDraft, DraftStatus
from weighbridge.core.draft_store import DraftStore
from weighbridge.core.workflow import WeighingWorkflow, PlateState

__all__ = [
    "Reading",
    "ConnectionStatus",
    "WeighingDraft",
    "DraftStatus",
    "DraftStore",
    "WeighingWorkflow",
    "PlateState",
]
