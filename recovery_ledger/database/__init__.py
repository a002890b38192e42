from recovery_ledger.database.models import CaseRecord, RecoveryTransaction

__all__ = ["CaseRecord", "RecoveryTransaction"]
