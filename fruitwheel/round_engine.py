"""
回合引擎
持有阶段状态机和计时器，组合下注账本、开奖、赔付、进度和历史记录
"""
import logging
import math
import random
import time
from datetime import date
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set

from fruitwheel.bet_ledger import BetLedger
from fruitwheel.config import ConfigOverrides, GameConfig, resolve_config
from fruitwheel.draw_selector import DrawSelector
from fruitwheel.models import (
    Account,
    EngineSnapshot,
    GameMode,
    GamePhase,
    Group,
    GROUP_ITEMS,
    Item,
    Overlay,
    Round,
    RoundRecord,
    RoundType,
    StakeEvent,
)
from fruitwheel.notifier import NullNotifier, StakeNotifier
from fruitwheel.payout_calculator import PayoutCalculator, PayoutResult
from fruitwheel.progress_tracker import ProgressTracker
from fruitwheel.record_store import DEFAULT_CAPACITY, RecordStore
from fruitwheel.timers import Scheduler, TimerRegistry

logger = logging.getLogger(__name__)


class EngineEvent(Enum):
    """引擎向展示层发出的事件"""
    PHASE = "phase"             # 进入新阶段
    GET_READY = "get_ready"     # 间歇阶段进入准备提示
    TICK = "tick"               # 倒计时减少
    STAKE = "stake"             # 下注成功
    SETTLED = "settled"         # 赔付已计算，记录已追加
    MILESTONE = "milestone"     # 宝箱解锁或打开
    CONFIG = "config"           # 远端配置到达
    MODE = "mode"               # 模式或筹码切换


Listener = Callable[[EngineEvent, EngineSnapshot], None]

# 计时器名称
PHASE_TIMER = "phase"
TICK_TIMER = "tick"


class RoundEngine:
    """
    回合引擎

    阶段严格循环: INTERMISSION -> BETTING -> DRAWING -> SHOWTIME -> INTERMISSION
    所有状态修改都在计时器回调或用户意图调用中同步完成
    """

    def __init__(
        self,
        account: Account,
        config: Optional[GameConfig] = None,
        player_id: str = "",
        notifier: Optional[StakeNotifier] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
        history_capacity: int = DEFAULT_CAPACITY,
        first_round_number: int = 1,
        progress_day: Optional[date] = None,
        opened_milestones: Iterable[int] = ()
    ):
        """
        初始化回合引擎

        Args:
            account: 玩家账户
            config: 内置默认配置，远端覆盖值在其上合并
            player_id: 玩家标识
            notifier: 下注通知旁路
            scheduler: 计时调度器（默认当前事件循环）
            rng: 随机数源
            clock: 当前时间戳函数
            today: 当前日期函数（用于每日重置进度）
            history_capacity: 历史记录容量
            first_round_number: 第一个回合编号
            progress_day: 账户 today_win 对应的日期
            opened_milestones: 已打开的宝箱索引
        """
        self.account = account
        self._base_config = config or GameConfig()
        self._latest_config = self._base_config
        self.config = self._base_config
        self._session_end_hint: Optional[float] = None

        self.notifier = notifier or NullNotifier()
        self.clock = clock
        self.today = today

        self.ledger = BetLedger(account, player_id, on_stake=self._forward_stake)
        self.selector = DrawSelector(rng)
        self.calculator = PayoutCalculator()
        self.progress = ProgressTracker(
            account, self.config.milestones, today=progress_day or today()
        )
        for index in opened_milestones:
            if 0 <= index < len(self.progress.milestones):
                self.progress.milestones[index].opened = True
        self.records = RecordStore(history_capacity)
        self.timers = TimerRegistry(scheduler)

        self.round: Optional[Round] = None
        self.next_round_number = first_round_number
        self.normal_since_jackpot = 0
        self.overlays: Set[Overlay] = set()
        self.mode = GameMode.BASIC
        self.selected_chip = 0
        self._pending: Optional[PayoutResult] = None
        self._listeners: List[Listener] = []
        self._started = False
        self._closed = False

    # ============ 生命周期 ============

    def start(self) -> None:
        """启动引擎，进入第一个间歇阶段"""
        if self._started or self._closed:
            return
        self._started = True
        logger.info(f"Round engine started at round {self.next_round_number}")
        self._enter_intermission()

    def stop(self) -> None:
        """关闭引擎：取消所有计时器，之后的回调和配置都不再修改状态"""
        if self._closed:
            return
        self._closed = True
        self.timers.close()
        self._listeners.clear()
        logger.info("Round engine stopped")

    @property
    def running(self) -> bool:
        return self._started and not self._closed

    @property
    def phase(self) -> Optional[GamePhase]:
        return self.round.phase if self.round else None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        订阅引擎事件

        Args:
            listener: 回调 (事件, 快照)

        Returns:
            取消订阅函数
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: EngineEvent) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(event, snapshot)
            except Exception as e:
                logger.error(f"Engine listener failed on {event.value}: {e}", exc_info=True)

    # ============ 配置 ============

    def apply_overrides(self, overrides: Optional[ConfigOverrides]) -> None:
        """
        应用远端配置

        新配置从下一个回合开始生效；会话结束提示只在下一次间歇结束时使用一次

        Args:
            overrides: 远端覆盖值
        """
        if self._closed or overrides is None:
            return
        self._latest_config = resolve_config(self._base_config, overrides)
        if overrides.session_end_at is not None:
            self._session_end_hint = overrides.session_end_at
        self._emit(EngineEvent.CONFIG)

    def set_session_hint(self, end_at: Optional[float]) -> None:
        self._session_end_hint = end_at

    def _resolve_betting_time(self) -> int:
        """使用并清除会话结束提示，提示无效时使用默认下注时长"""
        timings = self.config.timings
        hint, self._session_end_hint = self._session_end_hint, None
        if hint is not None and not math.isfinite(hint):
            logger.debug(f"Ignoring non-finite session hint: {hint}")
        elif hint is not None:
            remaining = math.ceil(hint - self.clock())
            if 0 < remaining < timings.session_hint_ceiling:
                logger.info(f"Betting time synced from session hint: {remaining}s")
                return remaining
            logger.debug(f"Ignoring session hint with {remaining}s remaining")
        return timings.betting_duration

    # ============ 阶段状态机 ============

    def _next_round_type(self) -> RoundType:
        every = self.config.jackpot_every
        if every > 0 and self.normal_since_jackpot >= every:
            return RoundType.JACKPOT
        return RoundType.NORMAL

    def _enter_intermission(self) -> None:
        # 每个回合使用一份配置快照
        self.config = self._latest_config
        self.progress.update_rewards(self.config.milestones)
        if self.selected_chip >= len(self.config.chips):
            self.selected_chip = 0
        if self.progress.roll_day(self.today()):
            logger.info("Daily progress reset")

        self._pending = None
        self.round = Round(
            number=self.next_round_number,
            type=self._next_round_type(),
            phase=GamePhase.INTERMISSION,
            created_at=self.clock(),
        )
        logger.info(f"Round {self.round.number} ({self.round.type.value}) starting")
        self._emit(EngineEvent.PHASE)
        self.timers.schedule(PHASE_TIMER, self.config.timings.banner_delay, self._on_banner_done)

    def _on_banner_done(self) -> None:
        self._emit(EngineEvent.GET_READY)
        self.timers.schedule(PHASE_TIMER, self.config.timings.ready_delay, self._begin_betting)

    def _begin_betting(self) -> None:
        self.round.time_left = self._resolve_betting_time()
        self.round.phase = GamePhase.BETTING
        logger.info(f"Round {self.round.number} betting for {self.round.time_left}s")
        self._emit(EngineEvent.PHASE)
        self.timers.schedule(TICK_TIMER, self.config.timings.tick_interval, self._on_tick)

    def _on_tick(self) -> None:
        self.round.time_left = max(0, self.round.time_left - 1)
        if self.round.time_left > 0:
            self._emit(EngineEvent.TICK)
            self.timers.schedule(TICK_TIMER, self.config.timings.tick_interval, self._on_tick)
            return
        self._draw()

    def _draw(self) -> None:
        """开奖，中奖结果在本回合剩余时间内固定"""
        self.timers.cancel(TICK_TIMER)
        timings = self.config.timings
        if self.round.type == RoundType.JACKPOT:
            group = self.selector.pick_group()
            self.round.winning_group = group
            self.round.winner = list(GROUP_ITEMS[group])
            duration = timings.drawing_jackpot
        else:
            self.round.winner = [self.selector.pick_item(self.config)]
            duration = timings.drawing_normal
        self.round.phase = GamePhase.DRAWING
        logger.info(
            f"Round {self.round.number} drawn: {', '.join(i.value for i in self.round.winner)}"
        )
        self._emit(EngineEvent.PHASE)
        self.timers.schedule(PHASE_TIMER, duration, self._settle)

    def _settle(self) -> None:
        """计算赔付（只执行一次）并追加历史记录，赔付在展示结束时才入账"""
        stakes = dict(self.ledger.stakes)
        result = self.calculator.calculate(
            self.round.type,
            stakes,
            self.config,
            winner=self.round.winner[0] if self.round.type == RoundType.NORMAL else None,
            group=self.round.winning_group,
        )
        self._pending = result
        self.round.payout = result.payout
        self.round.result = result.result

        selected, selected_amount = self.ledger.largest()
        balance_before = self.account.balance
        record = RoundRecord(
            round_number=self.round.number,
            timestamp=self.clock(),
            round_type=self.round.type,
            winners=tuple(self.round.winner),
            selected=selected,
            selected_amount=selected_amount,
            total_stake=self.ledger.total(),
            payout=result.payout,
            result=result.result,
            balance_before=balance_before,
            balance_after=balance_before + result.payout,
        )
        self.records.append(record)
        self.next_round_number = self.round.number + 1

        self.round.phase = GamePhase.SHOWTIME
        logger.info(
            f"Round {self.round.number} settled: {result.result.value}, payout {result.payout}"
        )
        self._emit(EngineEvent.SETTLED)

        timings = self.config.timings
        duration = (
            timings.showtime_jackpot if self.round.type == RoundType.JACKPOT
            else timings.showtime_normal
        )
        self.timers.schedule(PHASE_TIMER, duration, self._finish_round)

    def _finish_round(self) -> None:
        """入账赔付，清空下注和中奖结果，更新奖池计数，进入下一个回合"""
        payout = self._pending.payout if self._pending else 0
        self.account.balance += payout
        newly_ready = self.progress.add_win(payout)

        self.ledger.reset()
        self.round.winner = []
        self.round.winning_group = None

        if self.round.type == RoundType.JACKPOT:
            self.normal_since_jackpot = 0
        else:
            self.normal_since_jackpot += 1

        if newly_ready:
            logger.info(f"Milestones ready: {newly_ready}")
            self._emit(EngineEvent.MILESTONE)

        self._enter_intermission()

    # ============ 用户意图 ============

    def accepting_stakes(self) -> bool:
        """仅在下注阶段且没有任何阻塞层时接受下注"""
        return (
            self.running
            and self.round is not None
            and self.round.phase == GamePhase.BETTING
            and not self.overlays
        )

    def chip_value(self) -> int:
        return self.config.chips[self.selected_chip]

    def place_stake(self, item: Item, amount: Optional[int] = None) -> bool:
        """
        单个物品下注

        Args:
            item: 物品
            amount: 金额，None 时使用当前选中的筹码

        Returns:
            是否成功（失败时不修改任何状态）
        """
        if not self.accepting_stakes():
            logger.debug(f"Stake on {item.value} rejected: not accepting stakes")
            return False
        if amount is None:
            amount = self.chip_value()
        if not self.ledger.place_stake(item, amount, self.config.max_stakes):
            return False
        self._emit(EngineEvent.STAKE)
        return True

    def place_group_stake(self, group: Group, amount: Optional[int] = None) -> bool:
        """
        分组下注（四个物品全部成功或全部失败）

        Args:
            group: 分组
            amount: 每个物品的金额，None 时使用当前选中的筹码

        Returns:
            是否成功
        """
        if not self.accepting_stakes():
            logger.debug(f"Group stake on {group.value} rejected: not accepting stakes")
            return False
        if amount is None:
            amount = self.chip_value()
        if not self.ledger.place_group_stake(group, amount, self.config.max_stakes):
            return False
        self._emit(EngineEvent.STAKE)
        return True

    def select_chip(self, index: int) -> bool:
        """选择筹码面额"""
        if self._closed or not 0 <= index < len(self.config.chips):
            return False
        self.selected_chip = index
        self._emit(EngineEvent.MODE)
        return True

    def open_milestone(self, index: int) -> Optional[int]:
        """
        打开已解锁的宝箱

        只弹出宝箱奖励层，不改变余额和今日赢取

        Args:
            index: 宝箱索引

        Returns:
            奖励金额，不可打开时返回 None
        """
        if self._closed:
            return None
        reward = self.progress.open(index)
        if reward is None:
            return None
        self.overlays.add(Overlay.MILESTONE)
        self._emit(EngineEvent.MILESTONE)
        return reward

    def advanced_unlocked(self) -> bool:
        return (
            self.config.advanced_mode_override
            or self.account.lifetime_stake >= self.config.advanced_unlock_stake
        )

    def switch_mode(self, mode: GameMode) -> bool:
        """
        切换基础/高级模式

        高级模式需要累计下注达到解锁门槛或配置强制开启

        Args:
            mode: 目标模式

        Returns:
            是否切换成功
        """
        if self._closed:
            return False
        if mode == GameMode.ADVANCED and not self.advanced_unlocked():
            return False
        self.mode = mode
        self._emit(EngineEvent.MODE)
        return True

    def push_overlay(self, overlay: Overlay) -> None:
        if self._closed:
            return
        self.overlays.add(overlay)

    def dismiss_overlay(self, overlay: Overlay) -> None:
        self.overlays.discard(overlay)

    # ============ 快照 ============

    def snapshot(self) -> EngineSnapshot:
        """当前状态快照"""
        current = self.round
        return EngineSnapshot(
            phase=current.phase if current else GamePhase.INTERMISSION,
            time_left=current.time_left if current else 0,
            round_number=current.number if current else self.next_round_number,
            round_type=current.type if current else RoundType.NORMAL,
            stakes=dict(self.ledger.stakes),
            winners=tuple(current.winner) if current else (),
            winning_group=current.winning_group if current else None,
            payout=self._pending.payout if self._pending else None,
            result=self._pending.result if self._pending else None,
            balance=self.account.balance,
            today_win=self.account.today_win,
            lifetime_stake=self.account.lifetime_stake,
            mode=self.mode,
            chips=tuple(self.config.chips),
            selected_chip=self.selected_chip,
            multipliers=self.config.multipliers,
            max_stakes=self.config.max_stakes,
            overlays=tuple(sorted(self.overlays, key=lambda o: o.value)),
            milestones=self.progress.views(),
            progress=self.progress.progress(),
            history=tuple(self.records.recent()),
        )

    def _forward_stake(self, event: StakeEvent) -> None:
        self.notifier.notify(event)
