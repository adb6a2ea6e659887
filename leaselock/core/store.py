"""
LeaseStore interface.

Store harus linearizable per key. Semua mutation pada lease record
didelegasikan ke atomic primitive milik store; client tidak pernah
melakukan read-modify-write.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .records import LeaseRecord


class LeaseStore(ABC):
    """
    Key-value backend untuk lease records.

    Implementations translate library errors ke StoreTransportError
    dan condition failures ke ConditionNotMet.
    """

    @abstractmethod
    async def try_update(self,
                         name: str,
                         lock_until: datetime,
                         locked_at: datetime,
                         locked_by: str,
                         available_at: datetime) -> LeaseRecord:
        """
        Conditional update untuk acquire.

        Set lockUntil/lockedAt/lockedBy jika record absent atau
        lockUntil <= available_at.

        Returns:
            Record setelah write di-apply

        Raises:
            ConditionNotMet: lock masih di-hold
            StoreTransportError: store tidak bisa dihubungi
        """

    @abstractmethod
    async def update(self,
                     name: str,
                     lock_until: datetime,
                     held_until: Optional[datetime] = None) -> LeaseRecord:
        """
        Set lockUntil untuk release.

        Jika held_until diberikan, write hanya di-apply selama lockUntil
        di store masih sama dengan held_until (ConditionNotMet otherwise).
        Tanpa held_until write-nya unconditional.
        """

    @abstractmethod
    async def get(self, name: str) -> Optional[LeaseRecord]:
        """Read record untuk diagnostics. None jika tidak ada."""

    async def create_lease_table(self):
        """Provision storage. Default: tidak ada yang perlu dibuat."""

    async def close(self):
        """Release client resources"""
