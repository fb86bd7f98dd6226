from .accounts_service import AccountLedger, RotationStore
from .admission import AdmissionController
from .result_cache import ResultCache

__all__ = ["AccountLedger", "AdmissionController", "ResultCache", "RotationStore"]
