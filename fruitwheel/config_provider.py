"""
远端配置提供者
启动时从后端拉取配置，每个字段独立重试、独立回退到默认值
"""
import asyncio
import logging
import math
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import httpx

from fruitwheel.api_client import ApiPaths, GameApiClient
from fruitwheel.config import ConfigOverrides
from fruitwheel.error_handler import RetryConfig, retry_async
from fruitwheel.models import Item, parse_item

logger = logging.getLogger(__name__)

# 配置拉取的重试次数有限，启动不能被长时间阻塞
CONFIG_RETRY = RetryConfig(max_retries=2, base_delay=0.5, max_delay=4.0)

NAME_KEYS = ("name", "element", "fruit", "id", "key")
MULTIPLIER_KEYS = ("multiplier", "times", "odds", "rate")
WEIGHT_KEYS = ("win_weight", "winWeight", "weight", "probability")
VALUE_KEYS = ("value", "amount", "score", "button")
MAX_KEYS = ("maximum", "max", "count", "value")
REWARD_KEYS = ("reward", "amount", "value", "coins")
JACKPOT_KEYS = ("jackpot", "bonus", "amount", "value")
SESSION_KEYS = ("end_time", "endAt", "end_at", "timestamp", "value")


def _unwrap(payload: Any) -> Any:
    """去掉常见的 {"data": ...} 外层"""
    while isinstance(payload, dict) and "data" in payload and len(payload) <= 3:
        payload = payload["data"]
    return payload


def _pick(entry: Any, keys: Iterable[str]) -> Any:
    if isinstance(entry, dict):
        for key in keys:
            if key in entry and entry[key] is not None:
                return entry[key]
        return None
    return entry


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # NaN 和无穷大视为缺失
    return number if math.isfinite(number) else None


def parse_elements(payload: Any) -> Tuple[Dict[Item, int], Dict[Item, float]]:
    """
    解析物品表

    Args:
        payload: 后端返回的 JSON

    Returns:
        (倍率表, 权重表) 元组；仅包含可识别的物品

    Raises:
        ValueError: 没有任何可识别的物品
    """
    entries = _unwrap(payload)
    if isinstance(entries, dict):
        entries = [dict(value, name=key) if isinstance(value, dict) else {"name": key, "multiplier": value}
                   for key, value in entries.items()]
    if not isinstance(entries, list):
        raise ValueError("elements payload is not a list")

    multipliers: Dict[Item, int] = {}
    weights: Dict[Item, float] = {}
    for entry in entries:
        name = _pick(entry, NAME_KEYS)
        item = parse_item(str(name)) if name is not None else None
        if item is None:
            continue
        multiplier = _number(_pick(entry, MULTIPLIER_KEYS))
        if multiplier is not None and multiplier > 0:
            multipliers[item] = int(multiplier)
        weight = _number(_pick(entry, WEIGHT_KEYS))
        if weight is not None and weight >= 0:
            weights[item] = weight

    if not multipliers and not weights:
        raise ValueError("elements payload has no known items")
    return multipliers, weights


def parse_number_list(payload: Any, keys: Iterable[str]) -> Tuple[int, ...]:
    """解析数字列表（筹码面额、宝箱奖励）"""
    entries = _unwrap(payload)
    if not isinstance(entries, list):
        raise ValueError("payload is not a list")
    values = []
    for entry in entries:
        number = _number(_pick(entry, keys))
        if number is not None and number > 0:
            values.append(int(number))
    if not values:
        raise ValueError("payload has no positive numbers")
    return tuple(values)


def parse_scalar(payload: Any, keys: Iterable[str]) -> float:
    """解析单个数值"""
    value = _unwrap(payload)
    if isinstance(value, list):
        if not value:
            raise ValueError("empty list")
        value = value[0]
    number = _number(_pick(value, keys))
    if number is None:
        raise ValueError("payload has no numeric value")
    return number


def parse_session_end(payload: Any) -> float:
    """解析会话结束时间戳，毫秒时间戳转为秒"""
    value = parse_scalar(payload, SESSION_KEYS)
    if value > 1e12:
        value /= 1000.0
    return value


class ConfigProvider:
    """远端配置提供者"""

    def __init__(self, client: GameApiClient, retry: Optional[RetryConfig] = None):
        """
        初始化配置提供者

        Args:
            client: 后端 API 客户端
            retry: 重试配置
        """
        self.client = client
        self.retry = retry or CONFIG_RETRY

    async def _fetch(self, path: str, parser: Callable[[Any], Any]) -> Any:
        """
        拉取单个字段，失败返回 None

        Args:
            path: 接口路径
            parser: 解析函数

        Returns:
            解析结果，失败时为 None
        """
        try:
            payload = await retry_async(self.client.get_with_body, path, config=self.retry)
            return parser(payload)
        except (httpx.HTTPError, ValueError, TypeError, KeyError, OverflowError) as e:
            logger.warning(f"Config fetch {path} failed, using default: {e}")
            return None

    async def load(self) -> ConfigOverrides:
        """
        并发拉取全部配置字段

        Returns:
            覆盖值；任何字段失败都以 None 表示，不影响其他字段
        """
        elements, chips, max_stakes, rewards, jackpot, session_end = await asyncio.gather(
            self._fetch(ApiPaths.ELEMENTS, parse_elements),
            self._fetch(ApiPaths.BUTTONS, lambda p: parse_number_list(p, VALUE_KEYS)),
            self._fetch(ApiPaths.MAX_FRUITS, lambda p: int(parse_scalar(p, MAX_KEYS))),
            self._fetch(ApiPaths.BOXES, lambda p: parse_number_list(p, REWARD_KEYS)),
            self._fetch(ApiPaths.JACKPOT, lambda p: int(parse_scalar(p, JACKPOT_KEYS))),
            self._fetch(ApiPaths.SESSION_END, parse_session_end),
        )

        multipliers, weights = elements if elements else (None, None)
        overrides = ConfigOverrides(
            multipliers=multipliers or None,
            weights=weights or None,
            chips=chips,
            max_stakes=max_stakes,
            jackpot_bonus=jackpot,
            milestone_rewards=rewards,
            session_end_at=session_end,
        )
        logger.info(
            "Config loaded: "
            + ", ".join(
                f"{name}={'remote' if value is not None else 'default'}"
                for name, value in (
                    ("elements", elements),
                    ("chips", chips),
                    ("max_stakes", max_stakes),
                    ("boxes", rewards),
                    ("jackpot", jackpot),
                    ("session_end", session_end),
                )
            )
        )
        return overrides
