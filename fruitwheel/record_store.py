"""
回合记录存储
有界环形缓冲区，超过容量时丢弃最旧的记录
"""
from collections import deque
from typing import Deque, Iterable, List, Optional

from fruitwheel.models import RoundRecord

DEFAULT_CAPACITY = 20


class RecordStore:
    """已完成回合的历史记录"""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._records: Deque[RoundRecord] = deque(maxlen=capacity)

    def append(self, record: RoundRecord) -> None:
        self._records.append(record)

    def extend(self, records: Iterable[RoundRecord]) -> None:
        """批量加载（按时间顺序，旧的在前）"""
        for record in records:
            self._records.append(record)

    def latest(self) -> Optional[RoundRecord]:
        return self._records[-1] if self._records else None

    def recent(self, limit: Optional[int] = None) -> List[RoundRecord]:
        """最近的记录，新的在前"""
        records = list(reversed(self._records))
        if limit is not None:
            return records[:limit]
        return records

    def all(self) -> List[RoundRecord]:
        """全部记录，旧的在前"""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
