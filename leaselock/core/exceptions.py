"""
Exception taxonomy untuk lease lock.

ConditionNotMet dan StoreTransportError adalah error level store dan
tidak pernah keluar dari LeaseLock.try_acquire. LeaseReleaseError
adalah satu-satunya store failure yang di-surface ke caller.
"""


class LeaseLockError(Exception):
    """Base class untuk semua lease lock errors"""
    pass


class LockConfigurationError(LeaseLockError, ValueError):
    """Invalid parameters, rejected sebelum ada store call"""
    pass


class ConditionNotMet(LeaseLockError):
    """Store menolak conditional write karena precondition gagal"""

    def __init__(self, name: str):
        super().__init__(f"Condition not met for lock '{name}'")
        self.name = name


class StoreTransportError(LeaseLockError):
    """Store call tidak selesai (timeout, connectivity, server error)"""
    pass


class LeaseReleaseError(LeaseLockError):
    """
    Release write tidak bisa dikonfirmasi.

    Lock tetap aman: record akan expire sendiri di lock_at_most_until.
    """

    def __init__(self, name: str, reason: str = ""):
        message = f"Failed to release lock '{name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.name = name
