"""
错误处理模块
提供全局错误处理器、后端 API 与 Telegram API 重试机制和友好的错误消息
"""
import asyncio
import logging
from typing import Optional, Callable, Any

import httpx
from telegram import Update
from telegram.ext import ContextTypes
from telegram.error import (
    TelegramError,
    NetworkError,
    TimedOut,
    RetryAfter,
    BadRequest,
    Forbidden,
)

logger = logging.getLogger(__name__)


class ErrorMessages:
    """错误消息常量"""

    # 系统错误
    SYSTEM_ERROR = "❌ 系统暂时不可用，请稍后再试"
    NETWORK_ERROR = "❌ 网络连接失败，请稍后再试"

    # 命令格式错误
    COMMAND_FORMAT_ERROR = "❌ 命令格式错误"

    # 参数验证错误
    INVALID_ITEM = "❌ 未知的物品"
    INVALID_GROUP = "❌ 未知的分组，可选: veg / drink"
    INVALID_CHIP = "❌ 无效的筹码编号"

    # 游戏错误
    STAKE_REJECTED = "❌ 下注未被接受（不在下注阶段、余额不足或超过下注物品数上限）"
    GROUP_STAKE_REJECTED = "❌ 分组下注未被接受"
    CHEST_NOT_READY = "❌ 宝箱尚未解锁或已打开"
    MODE_LOCKED = "❌ 高级模式尚未解锁"
    GAME_UNAVAILABLE = "❌ 游戏功能暂不可用"

    @staticmethod
    def command_usage(command: str, usage: str, example: str) -> str:
        """
        生成命令使用说明

        Args:
            command: 命令名称
            usage: 使用方法
            example: 示例

        Returns:
            格式化的使用说明
        """
        return f"{ErrorMessages.COMMAND_FORMAT_ERROR}\n\n用法: {usage}\n示例: {example}"

    @staticmethod
    def invalid_parameter(param_name: str, reason: str) -> str:
        """
        生成参数验证错误消息

        Args:
            param_name: 参数名称
            reason: 错误原因

        Returns:
            格式化的错误消息
        """
        return f"❌ 无效的参数 '{param_name}': {reason}"


class RetryConfig:
    """重试配置"""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0
    ):
        """
        初始化重试配置

        Args:
            max_retries: 最大重试次数
            base_delay: 基础延迟（秒）
            max_delay: 最大延迟（秒）
            exponential_base: 指数退避基数
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base

    def get_delay(self, attempt: int) -> float:
        """
        计算第 n 次重试的延迟时间

        Args:
            attempt: 当前重试次数（从 0 开始）

        Returns:
            延迟时间（秒）
        """
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


# 默认重试配置
DEFAULT_RETRY_CONFIG = RetryConfig(max_retries=3)


def is_retryable_http_error(error: Exception) -> bool:
    """
    判断后端请求错误是否可以重试

    网络错误和 5xx 可以重试，4xx 不重试
    """
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, httpx.TransportError)


async def retry_async(
    func: Callable[..., Any],
    *args,
    config: Optional[RetryConfig] = None,
    **kwargs
) -> Any:
    """
    带重试机制的后端 API 调用

    Args:
        func: 要调用的异步函数
        *args: 函数参数
        config: 重试配置
        **kwargs: 函数关键字参数

    Returns:
        函数返回值

    Raises:
        httpx.HTTPError: 不可重试的错误，或重试次数用尽后仍然失败
    """
    if config is None:
        config = DEFAULT_RETRY_CONFIG

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except httpx.HTTPError as e:
            if not is_retryable_http_error(e) or attempt >= config.max_retries:
                raise
            delay = config.get_delay(attempt)
            logger.warning(f"Backend error on attempt {attempt + 1}, retrying in {delay}s: {e}")
            await asyncio.sleep(delay)


async def retry_telegram_api(
    func: Callable[..., Any],
    *args,
    config: Optional[RetryConfig] = None,
    **kwargs
) -> Any:
    """
    带重试机制的 Telegram API 调用

    Args:
        func: 要调用的异步函数
        *args: 函数参数
        config: 重试配置
        **kwargs: 函数关键字参数

    Returns:
        函数返回值

    Raises:
        TelegramError: 重试次数用尽后仍然失败
    """
    if config is None:
        config = DEFAULT_RETRY_CONFIG

    last_exception = None

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except RetryAfter as e:
            # Telegram 要求等待特定时间
            wait_time = e.retry_after
            logger.warning(f"Rate limited, waiting {wait_time} seconds")
            await asyncio.sleep(wait_time)
            last_exception = e
        except (BadRequest, Forbidden) as e:
            # 请求错误或权限错误，不重试，直接抛出
            logger.error(f"Telegram API error (not retrying): {e}")
            raise
        except TelegramError as e:
            # 网络错误和其他 Telegram 错误，可以重试
            if attempt < config.max_retries:
                delay = config.get_delay(attempt)
                logger.warning(f"Telegram error on attempt {attempt + 1}, retrying in {delay}s: {e}")
                await asyncio.sleep(delay)
                last_exception = e
            else:
                raise

    # 重试次数用尽
    if last_exception:
        raise last_exception


async def global_error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    全局错误处理器
    捕获所有未处理的异常并向用户发送友好的错误消息

    Args:
        update: Telegram Update 对象
        context: 上下文对象，包含错误信息
    """
    error = context.error

    # 记录错误日志
    logger.error(f"Exception while handling an update: {error}", exc_info=error)

    # 确定错误消息
    error_message = ErrorMessages.SYSTEM_ERROR

    if isinstance(error, (NetworkError, TimedOut)):
        error_message = ErrorMessages.NETWORK_ERROR
    elif isinstance(error, Forbidden):
        # Bot 被用户阻止或没有权限
        logger.warning(f"Bot forbidden: {error}")
        return  # 不发送消息

    # 尝试向用户发送错误消息
    if isinstance(update, Update):
        try:
            if update.effective_message:
                await update.effective_message.reply_text(error_message)
            elif update.callback_query:
                await update.callback_query.answer(error_message, show_alert=True)
        except TelegramError as e:
            logger.error(f"Failed to send error message to user: {e}")


class CommandValidator:
    """命令参数验证器"""

    @staticmethod
    def validate_amount(amount_str: str) -> tuple[bool, int, str]:
        """
        验证金额参数

        Args:
            amount_str: 金额字符串

        Returns:
            (是否有效, 金额值, 错误消息)
        """
        try:
            amount = int(amount_str)
        except ValueError:
            return False, 0, ErrorMessages.invalid_parameter("金额", "必须是整数")

        if amount <= 0:
            return False, 0, ErrorMessages.invalid_parameter("金额", "必须大于 0")

        return True, amount, ""

    @staticmethod
    def validate_index(index_str: str, size: int, param_name: str) -> tuple[bool, int, str]:
        """
        验证从 1 开始的编号参数

        Args:
            index_str: 编号字符串
            size: 可选项数量
            param_name: 参数名称

        Returns:
            (是否有效, 从 0 开始的索引, 错误消息)
        """
        try:
            number = int(index_str)
        except ValueError:
            return False, 0, ErrorMessages.invalid_parameter(param_name, "必须是整数")

        if not 1 <= number <= size:
            return False, 0, ErrorMessages.invalid_parameter(param_name, f"必须在 1-{size} 之间")

        return True, number - 1, ""
