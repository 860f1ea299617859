"""
下注账本
记录当前回合每个物品的下注，校验余额和同时下注物品数上限，并扣减账户余额
"""
import logging
from typing import Callable, Dict, List, Optional, Tuple

from fruitwheel.models import Account, Item, Group, GROUP_ITEMS, StakeEvent

logger = logging.getLogger(__name__)


class BetLedger:
    """下注账本，下注即时扣款，不做预留"""

    def __init__(
        self,
        account: Account,
        player_id: str = "",
        on_stake: Optional[Callable[[StakeEvent], None]] = None
    ):
        """
        初始化下注账本

        Args:
            account: 玩家账户（由账本和结算步骤共同修改）
            player_id: 玩家标识（用于通知账本后端）
            on_stake: 下注成功后的回调，尽力而为，不影响本地扣款
        """
        self.account = account
        self.player_id = player_id
        self.on_stake = on_stake
        self.stakes: Dict[Item, int] = {item: 0 for item in Item}

    def reset(self) -> None:
        """清空本回合下注"""
        self.stakes = {item: 0 for item in Item}

    def total(self) -> int:
        """本回合下注总额"""
        return sum(self.stakes.values())

    def staked_items(self) -> List[Item]:
        """有下注的物品（按固定顺序）"""
        return [item for item in Item if self.stakes[item] > 0]

    def largest(self) -> Tuple[Optional[Item], int]:
        """
        下注金额最大的物品，相同金额取顺序靠前者

        Returns:
            (物品, 金额) 元组，未下注时返回 (None, 0)
        """
        best: Optional[Item] = None
        best_amount = 0
        for item in Item:
            amount = self.stakes[item]
            if amount > best_amount:
                best, best_amount = item, amount
        return best, best_amount

    def can_stake(self, item: Item, amount: int, max_stakes: int) -> Tuple[bool, str]:
        """
        校验单个物品下注

        Args:
            item: 物品
            amount: 下注金额
            max_stakes: 同时下注物品数上限

        Returns:
            (是否允许, 拒绝原因) 元组
        """
        if amount <= 0:
            return False, "invalid amount"
        if amount > self.account.balance:
            return False, "insufficient balance"
        if self.stakes[item] == 0 and len(self.staked_items()) >= max_stakes:
            return False, "stake limit reached"
        return True, ""

    def place_stake(self, item: Item, amount: int, max_stakes: int) -> bool:
        """
        单个物品下注

        成功时扣减余额、累加累计下注、累加该物品下注，并发出通知

        Args:
            item: 物品
            amount: 下注金额
            max_stakes: 同时下注物品数上限

        Returns:
            是否成功（失败时不修改任何状态）
        """
        allowed, reason = self.can_stake(item, amount, max_stakes)
        if not allowed:
            logger.debug(f"Stake rejected: item={item.value} amount={amount} reason={reason}")
            return False

        self._debit(item, amount)
        self._notify(item, amount)
        return True

    def place_group_stake(self, group: Group, amount: int, max_stakes: int) -> bool:
        """
        分组下注：四个物品同时下注，全部成功或全部失败

        Args:
            group: 分组
            amount: 每个物品的下注金额
            max_stakes: 同时下注物品数上限

        Returns:
            是否成功
        """
        items = GROUP_ITEMS[group]
        if amount <= 0:
            return False
        if amount * len(items) > self.account.balance:
            logger.debug(f"Group stake rejected: group={group.value} reason=insufficient balance")
            return False

        new_items = [item for item in items if self.stakes[item] == 0]
        if len(self.staked_items()) + len(new_items) > max_stakes:
            logger.debug(f"Group stake rejected: group={group.value} reason=stake limit reached")
            return False

        for item in items:
            self._debit(item, amount)
        for item in items:
            self._notify(item, amount)
        return True

    def _debit(self, item: Item, amount: int) -> None:
        self.account.balance -= amount
        self.account.lifetime_stake += amount
        self.stakes[item] += amount

    def _notify(self, item: Item, amount: int) -> None:
        if self.on_stake is None:
            return
        event = StakeEvent(
            player_id=self.player_id,
            balance=self.account.balance,
            amount=amount,
            item=item,
        )
        try:
            self.on_stake(event)
        except Exception as e:
            # 通知失败不回滚本地扣款
            logger.warning(f"Stake notification failed: {e}")
