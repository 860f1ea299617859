"""
进度追踪器
累计今日赢取，按固定阈值解锁一次性宝箱奖励
"""
import logging
from datetime import date
from typing import List, Optional, Sequence, Tuple

from fruitwheel.models import Account, Milestone, MilestoneView

logger = logging.getLogger(__name__)


class ProgressTracker:
    """今日赢取进度和里程碑"""

    def __init__(
        self,
        account: Account,
        milestones: Sequence[Tuple[int, int]],
        today: Optional[date] = None
    ):
        """
        初始化进度追踪器

        Args:
            account: 玩家账户（读取和累加 today_win）
            milestones: (阈值, 奖励) 列表，阈值需递增
            today: 当前日期，用于每日重置
        """
        self.account = account
        self.milestones: List[Milestone] = [
            Milestone(threshold=threshold, reward=reward)
            for threshold, reward in sorted(milestones)
        ]
        self.day = today

    def add_win(self, amount: int) -> List[int]:
        """
        累加今日赢取

        Args:
            amount: 赔付金额

        Returns:
            本次新变为可领取的里程碑索引列表
        """
        if amount <= 0:
            return []
        before = self.ready_indexes()
        self.account.today_win += amount
        return [i for i in self.ready_indexes() if i not in before]

    def is_ready(self, index: int) -> bool:
        """里程碑可领取：今日赢取达到阈值且未打开"""
        if not 0 <= index < len(self.milestones):
            return False
        milestone = self.milestones[index]
        return self.account.today_win >= milestone.threshold and not milestone.opened

    def ready_indexes(self) -> List[int]:
        return [i for i in range(len(self.milestones)) if self.is_ready(i)]

    def open(self, index: int) -> Optional[int]:
        """
        打开里程碑宝箱

        仅在可领取时生效，奖励不计入今日赢取

        Args:
            index: 里程碑索引

        Returns:
            奖励金额，不可领取时返回 None
        """
        if not self.is_ready(index):
            return None
        milestone = self.milestones[index]
        milestone.opened = True
        logger.info(f"Milestone {milestone.threshold} opened, reward {milestone.reward}")
        return milestone.reward

    def update_rewards(self, milestones: Sequence[Tuple[int, int]]) -> None:
        """应用新的奖励表，保留已打开状态"""
        for milestone, (threshold, reward) in zip(self.milestones, sorted(milestones)):
            milestone.threshold = threshold
            milestone.reward = reward

    def roll_day(self, today: date) -> bool:
        """
        日期变化时重置今日赢取和所有宝箱

        Args:
            today: 当前日期

        Returns:
            是否发生了重置
        """
        if self.day == today:
            return False
        first = self.day is None
        self.day = today
        if first:
            return False
        self.reset()
        return True

    def reset(self) -> None:
        """重置今日赢取和里程碑"""
        self.account.today_win = 0
        for milestone in self.milestones:
            milestone.opened = False

    def segment_ratio(self) -> Tuple[int, float]:
        """
        当前所在分段及分段内比例

        分段 i 的区间为 [上一阈值, 阈值 i]，第一段下界为 0

        Returns:
            (分段索引, 比例) 元组；超过最后阈值时返回 (阈值数, 1.0)
        """
        today_win = self.account.today_win
        lower = 0
        for index, milestone in enumerate(self.milestones):
            upper = milestone.threshold
            if today_win < upper:
                if upper <= lower:
                    return index, 1.0
                return index, max(0.0, (today_win - lower) / (upper - lower))
            lower = upper
        return len(self.milestones), 1.0

    def progress(self) -> float:
        """整体进度 [0, 1]，各分段在进度条上等宽"""
        if not self.milestones:
            return 0.0
        index, ratio = self.segment_ratio()
        if index >= len(self.milestones):
            return 1.0
        return (index + ratio) / len(self.milestones)

    def views(self) -> Tuple[MilestoneView, ...]:
        return tuple(
            MilestoneView(
                threshold=m.threshold,
                reward=m.reward,
                ready=self.is_ready(i),
                opened=m.opened,
            )
            for i, m in enumerate(self.milestones)
        )
