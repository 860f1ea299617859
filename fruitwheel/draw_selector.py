"""
开奖选择器
普通回合按权重随机选出一个物品，奖池回合五五开选出一个分组
"""
import random
from typing import Optional

from fruitwheel.config import GameConfig
from fruitwheel.models import Item, Group


class DrawSelector:
    """开奖选择器"""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        初始化开奖选择器

        Args:
            rng: 随机数源（测试时传入带种子的实例）
        """
        self.rng = rng or random.Random()

    def pick_item(self, config: GameConfig) -> Item:
        """
        按权重选出普通回合的中奖物品

        在 [0, 总权重) 中均匀取值，按固定顺序逐个减去权重，
        余数 <= 0 时选中当前物品；浮点误差时回退到最后一个权重为正的物品

        Args:
            config: 本回合配置快照

        Returns:
            中奖物品
        """
        items = list(Item)
        weights = [max(0.0, float(config.weight(item))) for item in items]
        total = sum(weights)

        # 全部权重为 0 时退化为均匀选择
        if total <= 0:
            return self.rng.choice(items)

        remainder = self.rng.random() * total
        fallback = items[-1]
        for item, weight in zip(items, weights):
            if weight <= 0:
                continue
            fallback = item
            remainder -= weight
            if remainder <= 0:
                return item
        return fallback

    def pick_group(self) -> Group:
        """奖池回合：两个分组各 50% 概率，与物品权重无关"""
        return Group.VEG if self.rng.random() < 0.5 else Group.DRINK
