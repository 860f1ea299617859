"""
数据库和仓储层测试
测试表结构、账户快照读写和回合记录归档
"""
import os
import tempfile
from datetime import date

import pytest

from fruitwheel.database import DatabaseManager
from fruitwheel.models import Account, Item, RoundRecord, RoundResult, RoundType
from fruitwheel.repositories import AccountRepository, RoundRecordRepository


@pytest.fixture
async def db_manager():
    """创建临时数据库用于测试"""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)

    db = DatabaseManager(db_path)
    await db.initialize()

    yield db

    await db.close()
    if os.path.exists(db_path):
        os.unlink(db_path)


def make_record(number: int, payout: int = 0) -> RoundRecord:
    return RoundRecord(
        round_number=number,
        timestamp=1_700_000_000.0 + number,
        round_type=RoundType.JACKPOT if number % 2 == 0 else RoundType.NORMAL,
        winners=(Item.TOMATO, Item.LEMON),
        selected=Item.LEMON if payout else None,
        selected_amount=100 if payout else 0,
        total_stake=100 if payout else 0,
        payout=payout,
        result=RoundResult.WIN if payout else RoundResult.NOBET,
        balance_before=1_000,
        balance_after=1_000 + payout,
    )


class TestDatabaseInitialization:
    """测试数据库初始化"""

    async def test_creates_tables(self, db_manager):
        for table in ("accounts", "round_records"):
            result = await db_manager.fetch_one(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                (table,)
            )
            assert result is not None

    async def test_enables_wal_mode(self, db_manager):
        result = await db_manager.fetch_one("PRAGMA journal_mode")
        assert result['journal_mode'].upper() == 'WAL'


class TestAccountRepository:
    """测试账户仓储"""

    async def test_missing_account(self, db_manager):
        repo = AccountRepository(db_manager)
        assert await repo.get_account("nobody") is None

    async def test_create_and_restore(self, db_manager):
        repo = AccountRepository(db_manager)
        await repo.create_account("p1", 100_000)

        account, progress_day, opened = await repo.get_account("p1")

        assert account.balance == 100_000
        assert account.lifetime_stake == 0
        assert progress_day == date.today()
        assert opened == []

    async def test_save_overwrites_snapshot(self, db_manager):
        repo = AccountRepository(db_manager)
        await repo.create_account("p1", 100_000)

        await repo.save_account(
            "p1",
            Account(balance=80_000, lifetime_stake=20_000, today_win=12_000),
            date(2024, 3, 1),
            [0, 2],
        )
        account, progress_day, opened = await repo.get_account("p1")

        assert account == Account(balance=80_000, lifetime_stake=20_000, today_win=12_000)
        assert progress_day == date(2024, 3, 1)
        assert opened == [0, 2]


class TestRoundRecordRepository:
    """测试回合记录归档"""

    async def test_records_round_trip(self, db_manager):
        repo = RoundRecordRepository(db_manager)
        record = make_record(3, payout=500)

        await repo.save_record("p1", record)
        stored = await repo.get_recent("p1")

        assert stored == [record]

    async def test_duplicate_round_is_ignored(self, db_manager):
        repo = RoundRecordRepository(db_manager)
        await repo.save_record("p1", make_record(1))
        await repo.save_record("p1", make_record(1, payout=999))

        stored = await repo.get_recent("p1")
        assert len(stored) == 1
        assert stored[0].payout == 0

    async def test_recent_is_oldest_first_and_limited(self, db_manager):
        repo = RoundRecordRepository(db_manager)
        for number in range(1, 8):
            await repo.save_record("p1", make_record(number))
        await repo.save_record("p2", make_record(100))

        stored = await repo.get_recent("p1", limit=3)

        assert [r.round_number for r in stored] == [5, 6, 7]

    async def test_last_round_number(self, db_manager):
        repo = RoundRecordRepository(db_manager)
        assert await repo.get_last_round_number("p1") == 0

        await repo.save_record("p1", make_record(4))
        await repo.save_record("p1", make_record(9))

        assert await repo.get_last_round_number("p1") == 9
