"""
游戏配置
内置默认值 + 远端配置逐字段覆盖，每个回合使用一份不可变快照
"""
import logging
import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from fruitwheel.models import Item, ItemConfig

logger = logging.getLogger(__name__)


DEFAULT_ITEMS = MappingProxyType({
    Item.HONEY: ItemConfig(multiplier=45, win_weight=2),
    Item.TOMATO: ItemConfig(multiplier=5, win_weight=19),
    Item.LEMON: ItemConfig(multiplier=5, win_weight=19),
    Item.MILK: ItemConfig(multiplier=25, win_weight=3),
    Item.PUMPKIN: ItemConfig(multiplier=5, win_weight=19),
    Item.COLA: ItemConfig(multiplier=15, win_weight=6),
    Item.WATER: ItemConfig(multiplier=10, win_weight=9),
    Item.ZUCCHINI: ItemConfig(multiplier=5, win_weight=19),
})

DEFAULT_CHIPS = (10, 100, 500, 1000, 5000)

# (阈值, 奖励)
DEFAULT_MILESTONES = (
    (10_000, 1_000),
    (50_000, 5_000),
    (100_000, 10_000),
    (500_000, 50_000),
    (1_000_000, 100_000),
)


@dataclass(frozen=True)
class Timings:
    """阶段时长（秒）"""
    banner_delay: float = 1.5           # 回合开始横幅
    ready_delay: float = 2.0            # 准备提示
    betting_duration: int = 22          # 默认下注倒计时
    tick_interval: float = 1.0          # 倒计时间隔
    drawing_normal: float = 5.0
    drawing_jackpot: float = 8.0
    showtime_normal: float = 4.0
    showtime_jackpot: float = 7.0
    session_hint_ceiling: int = 120     # 会话结束提示的合理上限


@dataclass(frozen=True)
class GameConfig:
    """游戏配置快照"""
    items: Mapping[Item, ItemConfig] = field(default_factory=lambda: DEFAULT_ITEMS)
    chips: Tuple[int, ...] = DEFAULT_CHIPS
    max_stakes: int = 6
    jackpot_bonus: int = 50_000
    jackpot_every: int = 10
    milestones: Tuple[Tuple[int, int], ...] = DEFAULT_MILESTONES
    advanced_unlock_stake: int = 50_000
    advanced_mode_override: bool = False
    timings: Timings = field(default_factory=Timings)

    def multiplier(self, item: Item) -> int:
        return self.items[item].multiplier

    def weight(self, item: Item) -> float:
        return self.items[item].win_weight

    @property
    def multipliers(self) -> dict:
        return {item: self.items[item].multiplier for item in Item}


@dataclass(frozen=True)
class ConfigOverrides:
    """
    远端配置提供的覆盖值

    所有字段均可为 None，表示该字段获取失败或未提供，使用默认值
    """
    multipliers: Optional[Mapping[Item, int]] = None
    weights: Optional[Mapping[Item, float]] = None
    chips: Optional[Tuple[int, ...]] = None
    max_stakes: Optional[int] = None
    jackpot_bonus: Optional[int] = None
    milestone_rewards: Optional[Tuple[int, ...]] = None
    session_end_at: Optional[float] = None  # 一次性会话结束时间戳提示


def _positive_int(value) -> Optional[int]:
    """转换为正整数，无效返回 None"""
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if number <= 0:
        return None
    return number


def resolve_config(base: GameConfig, overrides: Optional[ConfigOverrides]) -> GameConfig:
    """
    用远端覆盖值逐字段合并默认配置

    无效字段被忽略并保留 base 中的值，部分失败不会影响其他字段

    Args:
        base: 基础配置（通常是内置默认值）
        overrides: 远端覆盖值，None 表示完全不可用

    Returns:
        合并后的新配置快照
    """
    if overrides is None:
        return base

    changes = {}

    if overrides.multipliers or overrides.weights:
        items = dict(base.items)
        for item in Item:
            current = items[item]
            multiplier = current.multiplier
            weight = current.win_weight
            if overrides.multipliers and item in overrides.multipliers:
                value = _positive_int(overrides.multipliers[item])
                if value is not None:
                    multiplier = value
            if overrides.weights is not None:
                # 远端提供了权重表时，未列出的物品权重为 1
                raw = overrides.weights.get(item, 1)
                try:
                    weight = float(raw)
                except (TypeError, ValueError):
                    weight = 1
                if not math.isfinite(weight):
                    weight = 1
                elif weight < 0:
                    weight = 0
            items[item] = ItemConfig(multiplier=multiplier, win_weight=weight)
        changes['items'] = MappingProxyType(items)

    if overrides.chips:
        chips = tuple(v for v in (_positive_int(c) for c in overrides.chips) if v is not None)
        if chips:
            changes['chips'] = tuple(sorted(chips))
        else:
            logger.warning("Ignoring chip override with no valid denominations")

    if overrides.max_stakes is not None:
        value = _positive_int(overrides.max_stakes)
        if value is not None:
            changes['max_stakes'] = min(value, len(Item))

    if overrides.jackpot_bonus is not None:
        value = _positive_int(overrides.jackpot_bonus)
        if value is not None:
            changes['jackpot_bonus'] = value

    if overrides.milestone_rewards:
        rewards = [_positive_int(r) for r in overrides.milestone_rewards]
        milestones = []
        for index, (threshold, reward) in enumerate(base.milestones):
            if index < len(rewards) and rewards[index] is not None:
                reward = rewards[index]
            milestones.append((threshold, reward))
        changes['milestones'] = tuple(milestones)

    if not changes:
        return base
    return replace(base, **changes)
