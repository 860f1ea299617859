"""
测试公共夹具
手动推进的调度器，替代事件循环的 call_later
"""
import random
from datetime import date
from typing import Any, Callable, List

import pytest

from fruitwheel.config import GameConfig
from fruitwheel.models import Account
from fruitwheel.notifier import RecordingNotifier
from fruitwheel.round_engine import RoundEngine


class ManualHandle:
    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: tuple):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """按虚拟时间执行回调的调度器"""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._queue: List[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        self._seq += 1
        handle = ManualHandle(self.now + delay, self._seq, callback, args)
        self._queue.append(handle)
        return handle

    def time(self) -> float:
        return self.now

    def pending(self) -> List[ManualHandle]:
        return [h for h in self._queue if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """推进虚拟时间，按到期顺序执行回调"""
        target = self.now + seconds
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._queue.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self.now = target
        self._queue = [h for h in self._queue if not h.cancelled]


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def account():
    return Account(balance=100_000)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_engine(scheduler, notifier):
    """创建使用手动调度器和固定随机种子的引擎"""
    engines = []

    def factory(account=None, config=None, seed=7, **kwargs):
        kwargs.setdefault("today", lambda: date(2024, 1, 1))
        engine = RoundEngine(
            account or Account(balance=100_000),
            config=config or GameConfig(),
            player_id="p1",
            notifier=notifier,
            scheduler=scheduler,
            rng=random.Random(seed),
            clock=scheduler.time,
            **kwargs
        )
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        engine.stop()
