"""
计时器管理
引擎持有的命名计时器句柄，阶段切换或关闭时精确取消，避免重复计时
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """与 asyncio 事件循环 call_later 兼容的调度器"""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class TimerRegistry:
    """
    命名计时器注册表

    同名计时器只保留一个：重新调度会先取消旧句柄
    关闭后不再接受新的调度，已取消的回调也不会再执行
    """

    def __init__(self, scheduler: Optional[Scheduler] = None):
        """
        初始化计时器注册表

        Args:
            scheduler: 调度器，None 时在首次调度时使用当前运行的事件循环
        """
        self._scheduler = scheduler
        self._handles: Dict[str, TimerHandle] = {}
        self._closed = False

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        return self._scheduler

    def schedule(self, name: str, delay: float, callback: Callable[[], None]) -> bool:
        """
        调度命名计时器

        Args:
            name: 计时器名称
            delay: 延迟（秒）
            callback: 到期回调

        Returns:
            是否已调度（关闭后返回 False）
        """
        if self._closed:
            return False
        self.cancel(name)

        def fire() -> None:
            # 句柄已被替换或取消时不执行
            if self._handles.get(name) is not handle_box[0]:
                return
            del self._handles[name]
            callback()

        handle_box: List[TimerHandle] = []
        handle = self.scheduler.call_later(max(0.0, delay), fire)
        handle_box.append(handle)
        self._handles[name] = handle
        return True

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)

    def close(self) -> None:
        """取消全部计时器并拒绝后续调度"""
        self._closed = True
        self.cancel_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def active(self) -> List[str]:
        """当前挂起的计时器名称"""
        return list(self._handles)
