"""
游戏后端 API 客户端
只读配置接口使用带请求体的 GET（非标准），下注提交使用普通 POST
"""
import json
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://gameadmin.nanovisionltd.com"


class ApiPaths:
    """后端接口路径"""
    ELEMENTS = "/game/game/elements"                # 物品倍率和权重
    BUTTONS = "/game/sorce/buttons"                 # 筹码面额
    MAX_FRUITS = "/game/maximum/fruits/per/turn"    # 每回合最多下注物品数
    BOXES = "/game/magic/boxs"                      # 宝箱奖励
    JACKPOT = "/game/jackpot/amount"                # 奖池奖励
    SESSION_END = "/game/session/end"               # 会话结束时间戳提示
    PLAYER_BET = "/game/player/bet"                 # 下注提交


class GameApiClient:
    """游戏后端 HTTP 客户端"""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        registration: str = "3",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        初始化 API 客户端

        Args:
            base_url: 后端地址
            registration: 注册编号（每个请求体都携带）
            timeout: 请求超时（秒）
            transport: 自定义传输层（测试时传入 MockTransport）
        """
        self.registration = registration
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    def _encode(self, payload: Optional[dict] = None) -> bytes:
        body = {"regisation": self.registration}
        if payload:
            body.update(payload)
        return json.dumps(body).encode("utf-8")

    async def get_with_body(self, path: str) -> Any:
        """
        以带请求体的 GET 调用只读配置接口

        Args:
            path: 接口路径

        Returns:
            解析后的 JSON

        Raises:
            httpx.HTTPError: 网络错误或非 2xx 响应
            ValueError: 响应不是 JSON
        """
        response = await self._client.request(
            "GET",
            path,
            content=self._encode(),
            headers={"Content-Type": "text/plain"},
        )
        response.raise_for_status()
        return response.json()

    async def post(self, path: str, payload: dict) -> httpx.Response:
        """
        POST 提交，不检查状态码，由调用方决定如何处理

        Args:
            path: 接口路径
            payload: 请求体字段

        Returns:
            HTTP 响应
        """
        return await self._client.post(
            path,
            content=self._encode(payload),
            headers={"Content-Type": "text/plain"},
        )

    async def close(self) -> None:
        await self._client.aclose()
