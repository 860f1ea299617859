"""
下注通知旁路
每次下注成功后尽力通知账本后端，结果不会反馈到游戏状态
"""
import asyncio
import logging
from typing import List, Protocol, Set

import httpx

from fruitwheel.api_client import ApiPaths, GameApiClient
from fruitwheel.models import StakeEvent

logger = logging.getLogger(__name__)


class StakeNotifier(Protocol):
    """尽力而为的通知接口，notify 不返回引擎依赖的任何值"""

    def notify(self, event: StakeEvent) -> None: ...


class NullNotifier:
    """不发送任何通知"""

    def notify(self, event: StakeEvent) -> None:
        pass


class RecordingNotifier:
    """记录通知事件（离线运行和测试使用）"""

    def __init__(self):
        self.events: List[StakeEvent] = []

    def notify(self, event: StakeEvent) -> None:
        self.events.append(event)


class HttpStakeNotifier:
    """
    通过 POST 通知账本后端

    发送在后台任务中进行，不等待结果；非 2xx 和网络错误只记录日志，
    不重试也不回滚本地扣款
    """

    def __init__(self, client: GameApiClient, path: str = ApiPaths.PLAYER_BET):
        self.client = client
        self.path = path
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def notify(self, event: StakeEvent) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._send(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, event: StakeEvent) -> None:
        payload = {
            "player_id": event.player_id,
            "balance": event.balance,
            "amount": event.amount,
            "element": event.item.value,
        }
        try:
            response = await self.client.post(self.path, payload)
        except httpx.HTTPError as e:
            logger.warning(f"Stake notification failed for {event.item.value}: {e}")
            return
        if response.is_error:
            logger.warning(
                f"Stake notification rejected with HTTP {response.status_code} for {event.item.value}"
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """等待所有进行中的通知完成"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """取消所有进行中的通知"""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
