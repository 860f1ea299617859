"""
回合记录存储单元测试
"""
import pytest

from fruitwheel.models import Item, RoundRecord, RoundResult, RoundType
from fruitwheel.record_store import RecordStore


def make_record(number: int) -> RoundRecord:
    return RoundRecord(
        round_number=number,
        timestamp=float(number),
        round_type=RoundType.NORMAL,
        winners=(Item.TOMATO,),
        selected=None,
        selected_amount=0,
        total_stake=0,
        payout=0,
        result=RoundResult.NOBET,
        balance_before=1000,
        balance_after=1000,
    )


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        RecordStore(0)


def test_oldest_records_are_evicted():
    """超过容量时丢弃最旧的记录"""
    store = RecordStore(capacity=3)
    for number in range(1, 6):
        store.append(make_record(number))

    assert len(store) == 3
    assert [r.round_number for r in store.all()] == [3, 4, 5]
    assert store.latest().round_number == 5


def test_recent_is_newest_first():
    store = RecordStore(capacity=10)
    store.extend(make_record(n) for n in range(1, 5))

    assert [r.round_number for r in store.recent()] == [4, 3, 2, 1]
    assert [r.round_number for r in store.recent(2)] == [4, 3]


def test_empty_store():
    store = RecordStore()
    assert store.latest() is None
    assert store.recent() == []
    assert len(store) == 0
