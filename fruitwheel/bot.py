"""
Telegram 展示层
渲染引擎快照，把用户操作转发给引擎（引擎负责最终校验）
"""
import asyncio
import json
import logging
from functools import wraps
from typing import Dict, Optional, Set
from telegram import Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from fruitwheel.api_client import DEFAULT_BASE_URL
from fruitwheel.keyboard import WheelKeyboardBuilder, WheelAction, format_amount
from fruitwheel.models import (
    EngineSnapshot,
    GameMode,
    GamePhase,
    GROUP_NAMES,
    Overlay,
    parse_group,
    parse_item,
)
from fruitwheel.error_handler import (
    global_error_handler,
    ErrorMessages,
    CommandValidator,
    retry_telegram_api,
    RetryConfig,
)
from fruitwheel.record_store import DEFAULT_CAPACITY
from fruitwheel.round_engine import EngineEvent, RoundEngine

logger = logging.getLogger(__name__)

# 面板编辑只做少量重试，下一次事件会再次刷新
PANEL_RETRY = RetryConfig(max_retries=1, base_delay=0.5)

# 下注阶段每隔多少秒刷新一次倒计时
TICK_REFRESH_EVERY = 5


def check_user_allowed(func):
    """装饰器：检查用户是否在白名单中（白名单为空则不限制）"""
    @wraps(func)
    async def wrapper(self, update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if not self.is_user_allowed(user.id):
            logger.warning(f"User {user.id} not in allowed list, ignoring update")
            return

        return await func(self, update, context, *args, **kwargs)
    return wrapper


class AppConfig:
    """应用配置类"""

    def __init__(self, config_path: str = "config/config.json"):
        """
        加载配置文件

        Args:
            config_path: 配置文件路径
        """
        with open(config_path, 'r') as f:
            config = json.load(f)

        self._load(config)
        self.bot_token: str = config['bot_token']

    def _load(self, config: dict) -> None:
        self.bot_token = config.get('bot_token', '')
        self.database_path: str = config.get('database_path', 'data/fruitwheel.db')
        self.api_base_url: str = config.get('api_base_url', DEFAULT_BASE_URL)
        self.registration: str = str(config.get('registration', '3'))
        self.player_id: str = str(config.get('player_id', 'player'))
        self.starting_balance: int = int(config.get('starting_balance', 100_000))
        self.allowed_users: list[int] = config.get('allowed_users', [])
        self.history_capacity: int = int(config.get('history_capacity', DEFAULT_CAPACITY))
        self.advanced_mode_override: bool = bool(config.get('advanced_mode_override', False))
        self.remote_config: bool = bool(config.get('remote_config', True))

    @classmethod
    def from_dict(cls, config: dict) -> 'AppConfig':
        """从字典创建配置对象（用于测试）"""
        instance = object.__new__(cls)
        instance._load(config)
        return instance


class BotHandlers:
    """Bot 命令处理器集合"""

    def __init__(
        self,
        engine: Optional[RoundEngine],
        allowed_users: Optional[list[int]] = None
    ):
        """
        初始化处理器

        Args:
            engine: 回合引擎（None 表示游戏不可用）
            allowed_users: 允许使用的用户 ID 列表（可选，为空则不限制）
        """
        self.engine = engine
        self.allowed_users = allowed_users or []
        self.panels: Dict[int, int] = {}  # chat_id -> 面板消息 ID
        self._rendered: Dict[int, str] = {}  # chat_id -> 上次渲染的面板内容
        self.bot = None
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = None

    def is_user_allowed(self, user_id: int) -> bool:
        """
        检查用户是否允许使用

        Args:
            user_id: 用户 ID

        Returns:
            是否允许
        """
        if not self.allowed_users:
            return True
        return user_id in self.allowed_users

    # ============ 引擎事件 -> 面板刷新 ============

    def attach(self, bot) -> None:
        """
        绑定 Telegram bot 并订阅引擎事件

        Args:
            bot: telegram.Bot 实例
        """
        self.bot = bot
        if self.engine is not None and self._unsubscribe is None:
            self._unsubscribe = self.engine.subscribe(self.on_engine_event)

    def on_engine_event(self, event: EngineEvent, snapshot: EngineSnapshot) -> None:
        """
        引擎事件回调（同步），Telegram 调用放到后台任务中执行

        Args:
            event: 事件类型
            snapshot: 引擎快照
        """
        if self.bot is None or not self.panels:
            return
        if event == EngineEvent.TICK and snapshot.time_left % TICK_REFRESH_EVERY != 0:
            return
        if event == EngineEvent.SETTLED and snapshot.history:
            text = WheelKeyboardBuilder.format_settlement_message(snapshot.history[0])
            for chat_id in list(self.panels):
                self._spawn(self._send(chat_id, text))
        self._spawn(self._refresh_panels(snapshot))

    def _spawn(self, coro) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, chat_id: int, text: str) -> None:
        try:
            await retry_telegram_api(self.bot.send_message, chat_id=chat_id, text=text, config=PANEL_RETRY)
        except TelegramError as e:
            logger.warning(f"Failed to send message to {chat_id}: {e}")

    async def _refresh_panels(self, snapshot: EngineSnapshot) -> None:
        """更新所有面板消息"""
        text = WheelKeyboardBuilder.format_panel_message(snapshot)
        keyboard = WheelKeyboardBuilder.build_main_panel(snapshot)
        rendered = text + keyboard.to_json()
        for chat_id, message_id in list(self.panels.items()):
            if self._rendered.get(chat_id) == rendered:
                continue
            self._rendered[chat_id] = rendered
            try:
                await retry_telegram_api(
                    self.bot.edit_message_text,
                    chat_id=chat_id,
                    message_id=message_id,
                    text=text,
                    reply_markup=keyboard,
                    config=PANEL_RETRY,
                )
            except BadRequest as e:
                # 内容未变化或消息已被删除，忽略错误
                logger.debug(f"Failed to update panel in {chat_id}: {e}")
            except TelegramError as e:
                logger.warning(f"Failed to update panel in {chat_id}: {e}")

    async def close(self) -> None:
        """取消订阅并取消进行中的 Telegram 调用"""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ============ 命令处理器 ============

    @check_user_allowed
    async def start_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /start 命令
        发送带按钮的主面板，之后的引擎事件会更新这条消息
        """
        chat = update.effective_chat
        if not chat:
            return

        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        snapshot = self.engine.snapshot()
        sent_message = await update.message.reply_text(
            text=WheelKeyboardBuilder.format_panel_message(snapshot),
            reply_markup=WheelKeyboardBuilder.build_main_panel(snapshot)
        )
        self.panels[chat.id] = sent_message.message_id
        self._rendered.pop(chat.id, None)

    @check_user_allowed
    async def status_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /status 命令"""
        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return
        snapshot = self.engine.snapshot()
        await update.message.reply_text(WheelKeyboardBuilder.format_panel_message(snapshot))

    @check_user_allowed
    async def history_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /history 命令"""
        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return
        records = self.engine.records.recent(10)
        await update.message.reply_text(WheelKeyboardBuilder.format_history(records))

    @check_user_allowed
    async def stake_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /stake 命令

        格式: /stake <物品> [金额]，省略金额时使用当前筹码
        """
        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        args = context.args or []
        if not args or len(args) > 2:
            await update.message.reply_text(
                ErrorMessages.command_usage("/stake", "/stake <物品> [金额]", "/stake tomato 100")
            )
            return

        item = parse_item(args[0])
        if item is None:
            await update.message.reply_text(ErrorMessages.INVALID_ITEM)
            return

        amount = None
        if len(args) == 2:
            valid, amount, error_msg = CommandValidator.validate_amount(args[1])
            if not valid:
                await update.message.reply_text(error_msg)
                return

        if self.engine.place_stake(item, amount):
            staked = self.engine.ledger.stakes[item]
            await update.message.reply_text(
                f"✅ 下注成功！{item.value} 累计 {staked}，余额 {self.engine.account.balance}"
            )
        else:
            await update.message.reply_text(ErrorMessages.STAKE_REJECTED)

    @check_user_allowed
    async def group_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /group 命令

        格式: /group <veg|drink> [金额]，金额为每个物品的下注
        """
        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        args = context.args or []
        if not args or len(args) > 2:
            await update.message.reply_text(
                ErrorMessages.command_usage("/group", "/group <veg|drink> [金额]", "/group veg 100")
            )
            return

        group = parse_group(args[0])
        if group is None:
            await update.message.reply_text(ErrorMessages.INVALID_GROUP)
            return

        amount = None
        if len(args) == 2:
            valid, amount, error_msg = CommandValidator.validate_amount(args[1])
            if not valid:
                await update.message.reply_text(error_msg)
                return

        if self.engine.place_group_stake(group, amount):
            await update.message.reply_text(
                f"✅ {GROUP_NAMES[group]}组下注成功！余额 {self.engine.account.balance}"
            )
        else:
            await update.message.reply_text(ErrorMessages.GROUP_STAKE_REJECTED)

    @check_user_allowed
    async def chip_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /chip <编号> 命令"""
        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        chips = self.engine.config.chips
        args = context.args or []
        if len(args) != 1:
            options = " ".join(f"{i + 1}={format_amount(v)}" for i, v in enumerate(chips))
            await update.message.reply_text(
                ErrorMessages.command_usage("/chip", f"/chip <编号> ({options})", "/chip 2")
            )
            return

        valid, index, error_msg = CommandValidator.validate_index(args[0], len(chips), "筹码编号")
        if not valid or not self.engine.select_chip(index):
            await update.message.reply_text(error_msg or ErrorMessages.INVALID_CHIP)
            return
        await update.message.reply_text(f"✅ 当前筹码: {format_amount(chips[index])}")

    @check_user_allowed
    async def chest_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /chest <编号> 命令"""
        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        milestones = self.engine.progress.milestones
        args = context.args or []
        if len(args) != 1:
            await update.message.reply_text(
                ErrorMessages.command_usage("/chest", f"/chest <1-{len(milestones)}>", "/chest 1")
            )
            return

        valid, index, error_msg = CommandValidator.validate_index(args[0], len(milestones), "宝箱编号")
        if not valid:
            await update.message.reply_text(error_msg)
            return

        reward = self.engine.open_milestone(index)
        if reward is None:
            await update.message.reply_text(ErrorMessages.CHEST_NOT_READY)
            return
        await update.message.reply_text(
            text=f"🎁 宝箱已打开，奖励 {reward}！",
            reply_markup=WheelKeyboardBuilder.build_popup_close()
        )

    @check_user_allowed
    async def mode_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /mode <basic|advanced> 命令"""
        if self.engine is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        args = context.args or []
        try:
            mode = GameMode(args[0].lower()) if len(args) == 1 else None
        except ValueError:
            mode = None
        if mode is None:
            await update.message.reply_text(
                ErrorMessages.command_usage("/mode", "/mode <basic|advanced>", "/mode advanced")
            )
            return

        if not self.engine.switch_mode(mode):
            needed = self.engine.config.advanced_unlock_stake - self.engine.account.lifetime_stake
            await update.message.reply_text(f"{ErrorMessages.MODE_LOCKED}，还需累计下注 {needed}")
            return
        await update.message.reply_text(f"✅ 已切换到{'高级' if mode == GameMode.ADVANCED else '基础'}模式")

    # ============ 按钮回调 ============

    @check_user_allowed
    async def callback_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理面板按钮回调

        回调数据格式: fw_{action}_{param}
        """
        query = update.callback_query
        if not query:
            return

        if self.engine is None:
            await query.answer(ErrorMessages.GAME_UNAVAILABLE)
            return

        action, param = WheelKeyboardBuilder.decode_callback(query.data)
        try:
            action = WheelAction(action)
        except ValueError:
            await query.answer("❌ 无效的回调数据")
            return

        if action == WheelAction.ITEM:
            await self._handle_item(query, param)
        elif action == WheelAction.GROUP:
            await self._handle_group(query, param)
        elif action == WheelAction.CHIP:
            await self._handle_chip(query, param)
        elif action == WheelAction.CHEST:
            await self._handle_chest(query, param)
        elif action == WheelAction.MODE:
            await self._handle_mode(query, param)
        elif action == WheelAction.HISTORY:
            records = self.engine.records.recent(10)
            await query.answer()
            await query.message.reply_text(WheelKeyboardBuilder.format_history(records))
        elif action == WheelAction.CLOSE:
            self.engine.dismiss_overlay(Overlay.MILESTONE)
            await query.answer("已收下")

    async def _handle_item(self, query, param: str) -> None:
        item = parse_item(param)
        if item is None:
            await query.answer(ErrorMessages.INVALID_ITEM)
            return
        if self.engine.place_stake(item):
            await query.answer(f"✅ {item.value} +{self.engine.chip_value()}")
        else:
            await query.answer(self._rejection_reason(), show_alert=True)

    async def _handle_group(self, query, param: str) -> None:
        group = parse_group(param)
        if group is None:
            await query.answer(ErrorMessages.INVALID_GROUP)
            return
        if self.engine.place_group_stake(group):
            await query.answer(f"✅ {GROUP_NAMES[group]} 每项 +{self.engine.chip_value()}")
        else:
            await query.answer(self._rejection_reason(), show_alert=True)

    async def _handle_chip(self, query, param: str) -> None:
        try:
            index = int(param)
        except ValueError:
            index = -1
        if self.engine.select_chip(index):
            await query.answer(f"🪙 {format_amount(self.engine.chip_value())}")
        else:
            await query.answer(ErrorMessages.INVALID_CHIP)

    async def _handle_chest(self, query, param: str) -> None:
        try:
            index = int(param)
        except ValueError:
            index = -1
        reward = self.engine.open_milestone(index)
        if reward is None:
            await query.answer(ErrorMessages.CHEST_NOT_READY)
            return
        await query.answer()
        await query.message.reply_text(
            text=f"🎁 宝箱已打开，奖励 {reward}！",
            reply_markup=WheelKeyboardBuilder.build_popup_close()
        )

    async def _handle_mode(self, query, param: str) -> None:
        try:
            mode = GameMode(param)
        except ValueError:
            await query.answer("❌ 未知的模式")
            return
        if self.engine.switch_mode(mode):
            await query.answer("✅ 模式已切换")
        else:
            await query.answer(ErrorMessages.MODE_LOCKED, show_alert=True)

    def _rejection_reason(self) -> str:
        """根据引擎状态给出下注被拒原因"""
        snapshot = self.engine.snapshot()
        if snapshot.phase != GamePhase.BETTING:
            return "❌ 当前不在下注阶段，请等待下一局"
        if snapshot.overlays:
            return "❌ 请先关闭弹窗"
        return ErrorMessages.STAKE_REJECTED


def create_bot_application(config: AppConfig, handlers: BotHandlers) -> Application:
    """
    创建 Bot 应用实例

    Args:
        config: 应用配置
        handlers: 命令处理器

    Returns:
        Application 实例
    """
    from telegram.request import HTTPXRequest

    request = HTTPXRequest(
        connection_pool_size=16,
        read_timeout=10.0,
        write_timeout=10.0,
        connect_timeout=10.0,
    )

    application = (
        Application.builder()
        .token(config.bot_token)
        .request(request)
        .build()
    )

    application.add_handler(CommandHandler("start", handlers.start_handler))
    application.add_handler(CommandHandler("status", handlers.status_handler))
    application.add_handler(CommandHandler("history", handlers.history_handler))
    application.add_handler(CommandHandler("stake", handlers.stake_handler))
    application.add_handler(CommandHandler("group", handlers.group_handler))
    application.add_handler(CommandHandler("chip", handlers.chip_handler))
    application.add_handler(CommandHandler("chest", handlers.chest_handler))
    application.add_handler(CommandHandler("mode", handlers.mode_handler))

    application.add_handler(CallbackQueryHandler(
        handlers.callback_handler,
        pattern=f"^{WheelKeyboardBuilder.CALLBACK_PREFIX}"
    ))

    # 注册全局错误处理器
    application.add_error_handler(global_error_handler)

    return application
