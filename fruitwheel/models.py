"""
数据模型
定义水果转盘游戏中使用的枚举和数据类
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Tuple
import time


# ============ 游戏枚举 ============

class GamePhase(Enum):
    """回合阶段（严格循环）"""
    INTERMISSION = "intermission"   # 间歇阶段（回合开始横幅 + 准备）
    BETTING = "betting"             # 下注阶段
    DRAWING = "drawing"             # 开奖阶段
    SHOWTIME = "showtime"           # 结算展示阶段


class RoundType(Enum):
    """回合类型"""
    NORMAL = "normal"       # 普通回合
    JACKPOT = "jackpot"     # 奖池回合


class RoundResult(Enum):
    """回合结果分类"""
    WIN = "win"
    LOSE = "lose"
    NOBET = "nobet"


class Item(Enum):
    """八个可下注的物品，定义顺序即为开奖迭代顺序"""
    HONEY = "honey"
    TOMATO = "tomato"
    LEMON = "lemon"
    MILK = "milk"
    PUMPKIN = "pumpkin"
    COLA = "cola"
    WATER = "water"
    ZUCCHINI = "zucchini"


class Group(Enum):
    """奖池回合使用的两个固定四物品分组"""
    VEG = "veg"         # 蔬果组（A 桶）
    DRINK = "drink"     # 饮品组（B 桶）


GROUP_ITEMS: Dict[Group, Tuple[Item, ...]] = {
    Group.VEG: (Item.TOMATO, Item.LEMON, Item.PUMPKIN, Item.ZUCCHINI),
    Group.DRINK: (Item.HONEY, Item.MILK, Item.COLA, Item.WATER),
}


class Overlay(Enum):
    """由展示层显式弹出的阻塞层"""
    MILESTONE = "milestone"     # 宝箱奖励弹窗
    DIALOG = "dialog"           # 信息对话框


class GameMode(Enum):
    """玩法模式"""
    BASIC = "basic"
    ADVANCED = "advanced"


ITEM_NAMES = {
    Item.HONEY: "蜂蜜",
    Item.TOMATO: "番茄",
    Item.LEMON: "柠檬",
    Item.MILK: "牛奶",
    Item.PUMPKIN: "南瓜",
    Item.COLA: "可乐",
    Item.WATER: "矿泉水",
    Item.ZUCCHINI: "西葫芦",
}

ITEM_EMOJI = {
    Item.HONEY: "🍯",
    Item.TOMATO: "🍅",
    Item.LEMON: "🍋",
    Item.MILK: "🥛",
    Item.PUMPKIN: "🎃",
    Item.COLA: "🥤",
    Item.WATER: "💧",
    Item.ZUCCHINI: "🥒",
}

GROUP_NAMES = {
    Group.VEG: "蔬果",
    Group.DRINK: "饮品",
}


def parse_item(value: str) -> Optional[Item]:
    """按标识或中文名解析物品，无法识别返回 None"""
    if not value:
        return None
    text = value.strip().lower()
    for item in Item:
        if item.value == text or ITEM_NAMES[item] == value.strip():
            return item
    return None


def parse_group(value: str) -> Optional[Group]:
    """按标识或中文名解析分组"""
    if not value:
        return None
    text = value.strip().lower()
    aliases = {"a": Group.VEG, "b": Group.DRINK}
    if text in aliases:
        return aliases[text]
    for group in Group:
        if group.value == text or GROUP_NAMES[group] == value.strip():
            return group
    return None


# ============ 数据类 ============

@dataclass
class Account:
    """玩家账户"""
    balance: int = 0            # 可用余额
    lifetime_stake: int = 0     # 累计下注（用于解锁高级模式）
    today_win: int = 0          # 今日赢取（进度重置后累计）

    @classmethod
    def from_dict(cls, data: dict) -> 'Account':
        """从字典创建 Account 对象"""
        return cls(
            balance=data.get('balance', 0),
            lifetime_stake=data.get('lifetime_stake', 0),
            today_win=data.get('today_win', 0),
        )


@dataclass(frozen=True)
class ItemConfig:
    """单个物品的赔率和开奖权重"""
    multiplier: int
    win_weight: float = 1


@dataclass
class Milestone:
    """今日赢取里程碑（宝箱）"""
    threshold: int
    reward: int
    opened: bool = False


@dataclass
class Round:
    """回合会话模型，每个循环开始时创建"""
    number: int                                             # 回合编号
    type: RoundType                                         # 回合类型
    phase: GamePhase = GamePhase.INTERMISSION               # 当前阶段
    time_left: int = 0                                      # 下注剩余秒数
    winner: List[Item] = field(default_factory=list)        # 中奖物品（普通 1 个，奖池 4 个）
    winning_group: Optional[Group] = None                   # 奖池回合中奖分组
    payout: int = 0                                         # 已计算的赔付
    result: Optional[RoundResult] = None                    # 结果分类
    created_at: float = field(default_factory=time.time)    # 创建时间


@dataclass(frozen=True)
class RoundRecord:
    """已完成回合的不可变快照"""
    round_number: int
    timestamp: float
    round_type: RoundType
    winners: Tuple[Item, ...]
    selected: Optional[Item]        # 结算时玩家下注最多的物品
    selected_amount: int
    total_stake: int
    payout: int
    result: RoundResult
    balance_before: int
    balance_after: int

    def to_dict(self) -> dict:
        """转换为可持久化的字典"""
        return {
            'round_number': self.round_number,
            'timestamp': self.timestamp,
            'round_type': self.round_type.value,
            'winners': ",".join(item.value for item in self.winners),
            'selected': self.selected.value if self.selected else None,
            'selected_amount': self.selected_amount,
            'total_stake': self.total_stake,
            'payout': self.payout,
            'result': self.result.value,
            'balance_before': self.balance_before,
            'balance_after': self.balance_after,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RoundRecord':
        """从字典创建 RoundRecord 对象"""
        winners = data.get('winners') or ""
        selected = data.get('selected')
        return cls(
            round_number=data['round_number'],
            timestamp=data['timestamp'],
            round_type=RoundType(data['round_type']),
            winners=tuple(Item(v) for v in winners.split(",") if v),
            selected=Item(selected) if selected else None,
            selected_amount=data.get('selected_amount', 0),
            total_stake=data.get('total_stake', 0),
            payout=data['payout'],
            result=RoundResult(data['result']),
            balance_before=data['balance_before'],
            balance_after=data['balance_after'],
        )


@dataclass(frozen=True)
class StakeEvent:
    """下注成功后发往账本后端的通知"""
    player_id: str
    balance: int        # 下注后的本地余额
    amount: int
    item: Item


@dataclass(frozen=True)
class MilestoneView:
    """里程碑状态视图"""
    threshold: int
    reward: int
    ready: bool
    opened: bool


@dataclass(frozen=True)
class EngineSnapshot:
    """提供给展示层的同步状态快照"""
    phase: GamePhase
    time_left: int
    round_number: int
    round_type: RoundType
    stakes: Dict[Item, int]
    winners: Tuple[Item, ...]
    winning_group: Optional[Group]
    payout: Optional[int]
    result: Optional[RoundResult]
    balance: int
    today_win: int
    lifetime_stake: int
    mode: GameMode
    chips: Tuple[int, ...]
    selected_chip: int
    multipliers: Dict[Item, int]
    max_stakes: int
    overlays: Tuple[Overlay, ...]
    milestones: Tuple[MilestoneView, ...]
    progress: float
    history: Tuple[RoundRecord, ...]

    @property
    def accepting_stakes(self) -> bool:
        """当前是否可以下注"""
        return self.phase == GamePhase.BETTING and not self.overlays

    @property
    def total_stake(self) -> int:
        """本回合下注总额"""
        return sum(self.stakes.values())
