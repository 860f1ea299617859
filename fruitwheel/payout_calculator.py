"""
赔付计算器
根据开奖结果和本回合下注计算赔付与结果分类
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from fruitwheel.config import GameConfig
from fruitwheel.models import Item, Group, GROUP_ITEMS, RoundResult, RoundType


@dataclass(frozen=True)
class PayoutResult:
    """一次结算的计算结果"""
    payout: int
    result: RoundResult
    base_win: int = 0
    bonus: int = 0
    matched: Tuple[Item, ...] = ()
    exact_four: bool = False


class PayoutCalculator:
    """赔付计算器"""

    @staticmethod
    def classify(payout: int, total_stake: int) -> RoundResult:
        """
        结果分类

        Args:
            payout: 赔付金额
            total_stake: 本回合下注总额

        Returns:
            WIN（有赔付）/ NOBET（未下注）/ LOSE
        """
        if payout > 0:
            return RoundResult.WIN
        if total_stake == 0:
            return RoundResult.NOBET
        return RoundResult.LOSE

    @staticmethod
    def round_half_up(value: float) -> int:
        """四舍五入到整数（.5 向上）"""
        return int(value + 0.5) if value >= 0 else -int(-value + 0.5)

    @staticmethod
    def calculate_normal(
        stakes: Dict[Item, int],
        winner: Item,
        config: GameConfig
    ) -> PayoutResult:
        """
        计算普通回合赔付

        规则: 中奖物品有下注时返还 下注 * 倍率，否则 0

        Args:
            stakes: 物品 -> 下注金额
            winner: 中奖物品
            config: 本回合配置快照

        Returns:
            赔付计算结果
        """
        stake = stakes.get(winner, 0)
        payout = stake * config.multiplier(winner) if stake > 0 else 0
        total = sum(stakes.values())
        return PayoutResult(
            payout=payout,
            result=PayoutCalculator.classify(payout, total),
            base_win=payout,
            matched=(winner,) if stake > 0 else (),
        )

    @staticmethod
    def calculate_jackpot(
        stakes: Dict[Item, int],
        group: Group,
        config: GameConfig
    ) -> PayoutResult:
        """
        计算奖池回合赔付

        规则:
        - 命中物品 = 中奖分组内有下注的物品
        - 基础赔付 = 命中物品的 下注 * 倍率 之和
        - 恰好押中四个且组外无下注: 奖励全额奖池
        - 否则奖励 奖池 * 命中数 / 4（四舍五入）
        - 无命中时赔付为 0

        Args:
            stakes: 物品 -> 下注金额
            group: 中奖分组
            config: 本回合配置快照

        Returns:
            赔付计算结果
        """
        group_items = GROUP_ITEMS[group]
        matched = tuple(item for item in group_items if stakes.get(item, 0) > 0)
        total = sum(stakes.values())

        if not matched:
            return PayoutResult(payout=0, result=PayoutCalculator.classify(0, total))

        base_win = sum(stakes[item] * config.multiplier(item) for item in matched)
        outside = any(
            amount > 0 for item, amount in stakes.items() if item not in group_items
        )
        exact_four = len(matched) == len(group_items) and not outside

        if exact_four:
            bonus = config.jackpot_bonus
        else:
            bonus = PayoutCalculator.round_half_up(
                config.jackpot_bonus * len(matched) / len(group_items)
            )

        payout = base_win + bonus
        return PayoutResult(
            payout=payout,
            result=PayoutCalculator.classify(payout, total),
            base_win=base_win,
            bonus=bonus,
            matched=matched,
            exact_four=exact_four,
        )

    @staticmethod
    def calculate(
        round_type: RoundType,
        stakes: Dict[Item, int],
        config: GameConfig,
        winner: Optional[Item] = None,
        group: Optional[Group] = None
    ) -> PayoutResult:
        """
        计算任意回合赔付（统一入口）

        Args:
            round_type: 回合类型
            stakes: 物品 -> 下注金额
            config: 本回合配置快照
            winner: 普通回合中奖物品
            group: 奖池回合中奖分组

        Returns:
            赔付计算结果
        """
        if round_type == RoundType.JACKPOT:
            if group is None:
                raise ValueError("jackpot round requires a winning group")
            return PayoutCalculator.calculate_jackpot(stakes, group, config)
        if winner is None:
            raise ValueError("normal round requires a winning item")
        return PayoutCalculator.calculate_normal(stakes, winner, config)
