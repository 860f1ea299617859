"""
仓储层
管理账户快照和回合记录归档的读写
"""
from datetime import date
from typing import List, Optional, Tuple
import time

from fruitwheel.database import DatabaseManager
from fruitwheel.models import Account, RoundRecord


class AccountRepository:
    """账户仓储"""

    def __init__(self, db: DatabaseManager):
        """
        初始化账户仓储

        Args:
            db: 数据库管理器实例
        """
        self.db = db

    async def get_account(self, player_id: str) -> Optional[Tuple[Account, Optional[date], List[int]]]:
        """
        读取账户快照

        Args:
            player_id: 玩家标识

        Returns:
            (账户, 进度日期, 已打开宝箱索引) 元组，不存在时返回 None
        """
        row = await self.db.fetch_one(
            "SELECT * FROM accounts WHERE player_id = ?",
            (player_id,)
        )
        if row is None:
            return None

        progress_day = date.fromisoformat(row['progress_day']) if row['progress_day'] else None
        opened = [int(v) for v in row['milestones_opened'].split(",") if v]
        return Account.from_dict(row), progress_day, opened

    async def create_account(self, player_id: str, starting_balance: int) -> Account:
        """
        创建新账户

        Args:
            player_id: 玩家标识
            starting_balance: 初始余额

        Returns:
            创建的账户对象
        """
        account = Account(balance=starting_balance)
        await self.save_account(player_id, account, date.today(), [])
        return account

    async def save_account(
        self,
        player_id: str,
        account: Account,
        progress_day: Optional[date],
        opened: List[int]
    ) -> None:
        """
        保存账户快照（存在则覆盖）

        Args:
            player_id: 玩家标识
            account: 账户
            progress_day: 今日赢取对应的日期
            opened: 已打开宝箱索引
        """
        await self.db.execute(
            """INSERT INTO accounts
               (player_id, balance, lifetime_stake, today_win, progress_day, milestones_opened, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(player_id) DO UPDATE SET
                   balance = excluded.balance,
                   lifetime_stake = excluded.lifetime_stake,
                   today_win = excluded.today_win,
                   progress_day = excluded.progress_day,
                   milestones_opened = excluded.milestones_opened,
                   updated_at = excluded.updated_at""",
            (
                player_id,
                account.balance,
                account.lifetime_stake,
                account.today_win,
                progress_day.isoformat() if progress_day else None,
                ",".join(str(i) for i in opened),
                int(time.time()),
            )
        )


class RoundRecordRepository:
    """回合记录归档仓储"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def save_record(self, player_id: str, record: RoundRecord) -> None:
        """
        归档回合记录（同一回合编号重复写入时忽略）

        Args:
            player_id: 玩家标识
            record: 回合记录
        """
        data = record.to_dict()
        await self.db.execute(
            """INSERT OR IGNORE INTO round_records
               (player_id, round_number, timestamp, round_type, winners, selected,
                selected_amount, total_stake, payout, result, balance_before, balance_after)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                player_id,
                data['round_number'],
                data['timestamp'],
                data['round_type'],
                data['winners'],
                data['selected'],
                data['selected_amount'],
                data['total_stake'],
                data['payout'],
                data['result'],
                data['balance_before'],
                data['balance_after'],
            )
        )

    async def get_recent(self, player_id: str, limit: int = 20) -> List[RoundRecord]:
        """
        获取最近的回合记录

        Args:
            player_id: 玩家标识
            limit: 返回的记录数量

        Returns:
            回合记录列表（旧的在前）
        """
        rows = await self.db.fetch_all(
            """SELECT * FROM round_records
               WHERE player_id = ?
               ORDER BY round_number DESC
               LIMIT ?""",
            (player_id, limit)
        )
        return [RoundRecord.from_dict(row) for row in reversed(rows)]

    async def get_last_round_number(self, player_id: str) -> int:
        """最后一个归档的回合编号，没有记录时返回 0"""
        row = await self.db.fetch_one(
            "SELECT MAX(round_number) AS last FROM round_records WHERE player_id = ?",
            (player_id,)
        )
        if row and row['last'] is not None:
            return row['last']
        return 0
