"""
水果转盘机器人主程序入口
实现组件初始化、远端配置加载、状态持久化和优雅关闭
"""
import asyncio
import logging
import signal
import sys
import os
from datetime import date
from pathlib import Path
from typing import Optional, Set

from fruitwheel.api_client import GameApiClient
from fruitwheel.bot import AppConfig, BotHandlers, create_bot_application
from fruitwheel.config import GameConfig
from fruitwheel.config_provider import ConfigProvider
from fruitwheel.database import DatabaseManager
from fruitwheel.models import EngineSnapshot
from fruitwheel.notifier import HttpStakeNotifier
from fruitwheel.repositories import AccountRepository, RoundRecordRepository
from fruitwheel.round_engine import EngineEvent, RoundEngine

# 配置日志
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
# httpx 每个请求都会打 INFO 日志
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


class FruitWheelApplication:
    """应用程序类，管理生命周期"""

    def __init__(self, config_path: str = "config/config.json"):
        """
        初始化应用

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.config: Optional[AppConfig] = None
        self.db: Optional[DatabaseManager] = None
        self.account_repo: Optional[AccountRepository] = None
        self.record_repo: Optional[RoundRecordRepository] = None
        self.client: Optional[GameApiClient] = None
        self.notifier: Optional[HttpStakeNotifier] = None
        self.engine: Optional[RoundEngine] = None
        self.handlers: Optional[BotHandlers] = None
        self.application = None
        self._tasks: Set[asyncio.Task] = set()
        self._shutdown_event = asyncio.Event()

    async def initialize(self) -> None:
        """初始化所有组件"""
        logger.info("正在初始化水果转盘...")

        # 加载配置
        if self.config is None:
            self.config = AppConfig(self.config_path)
        logger.info(f"配置加载完成，数据库路径: {self.config.database_path}")

        # 确保数据目录存在
        db_dir = Path(self.config.database_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

        # 初始化数据库
        self.db = DatabaseManager(self.config.database_path)
        await self.db.initialize()
        logger.info("数据库初始化完成")

        # 初始化仓储层
        self.account_repo = AccountRepository(self.db)
        self.record_repo = RoundRecordRepository(self.db)

        # 恢复或创建账户
        player_id = self.config.player_id
        stored = await self.account_repo.get_account(player_id)
        if stored is None:
            account = await self.account_repo.create_account(player_id, self.config.starting_balance)
            progress_day, opened = date.today(), []
            logger.info(f"新建账户 {player_id}，初始余额 {account.balance}")
        else:
            account, progress_day, opened = stored
            logger.info(f"恢复账户 {player_id}，余额 {account.balance}")

        last_round = await self.record_repo.get_last_round_number(player_id)
        recent = await self.record_repo.get_recent(player_id, self.config.history_capacity)

        # 初始化网络层
        self.client = GameApiClient(self.config.api_base_url, self.config.registration)
        self.notifier = HttpStakeNotifier(self.client)

        # 初始化引擎
        self.engine = RoundEngine(
            account,
            config=GameConfig(advanced_mode_override=self.config.advanced_mode_override),
            player_id=player_id,
            notifier=self.notifier,
            history_capacity=self.config.history_capacity,
            first_round_number=last_round + 1,
            progress_day=progress_day,
            opened_milestones=opened,
        )
        self.engine.records.extend(recent)
        self.engine.subscribe(self._on_engine_event)

        # 初始化处理器
        self.handlers = BotHandlers(self.engine, allowed_users=self.config.allowed_users)

        # 创建 Bot 应用
        self.application = create_bot_application(self.config, self.handlers)
        logger.info("Bot 应用创建完成")

    # ============ 远端配置 ============

    async def hydrate(self) -> None:
        """拉取远端配置并交给引擎，引擎已关闭时丢弃"""
        provider = ConfigProvider(self.client)
        overrides = await provider.load()
        if self.engine is None or not self.engine.running:
            logger.info("引擎已关闭，丢弃远端配置")
            return
        self.engine.apply_overrides(overrides)

    # ============ 持久化 ============

    def _on_engine_event(self, event: EngineEvent, snapshot: EngineSnapshot) -> None:
        """结算、下注和宝箱变化后保存状态"""
        if event == EngineEvent.SETTLED and snapshot.history:
            self._spawn(self._persist(snapshot.history[0]))
        elif event in (EngineEvent.STAKE, EngineEvent.MILESTONE):
            self._spawn(self._persist(None))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist(self, record) -> None:
        player_id = self.config.player_id
        try:
            if record is not None:
                await self.record_repo.save_record(player_id, record)
            progress = self.engine.progress
            await self.account_repo.save_account(
                player_id,
                self.engine.account,
                progress.day,
                [i for i, m in enumerate(progress.milestones) if m.opened],
            )
        except Exception as e:
            logger.error(f"保存状态失败: {e}", exc_info=True)

    # ============ 生命周期 ============

    async def start(self) -> None:
        """启动引擎和 Bot"""
        if self.application is None:
            await self.initialize()

        logger.info("正在启动 Bot...")

        await self.application.initialize()
        await self.application.start()
        self.handlers.attach(self.application.bot)

        self.engine.start()
        if self.config.remote_config:
            self._spawn(self.hydrate())

        await self.application.updater.start_polling(
            drop_pending_updates=True,
            allowed_updates=["message", "callback_query"],
        )

        logger.info("Bot 已启动，正在监听消息...")

        # 等待关闭信号
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """停止引擎和 Bot 并清理资源"""
        logger.info("正在关闭...")

        # 先停引擎，之后不再产生新事件
        if self.engine:
            self.engine.stop()

        if self.handlers:
            await self.handlers.close()

        if self.application:
            if self.application.updater and self.application.updater.running:
                await self.application.updater.stop()
            if self.application.running:
                await self.application.stop()
            await self.application.shutdown()

        # 等待进行中的保存，取消尚未返回的配置请求
        pending = list(self._tasks)
        if pending:
            await asyncio.wait(pending, timeout=5.0)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if self.notifier:
            await self.notifier.close()
        if self.client:
            await self.client.close()

        if self.db:
            await self.db.close()
            logger.info("数据库连接已关闭")

        logger.info("已关闭")

    def request_shutdown(self) -> None:
        """请求关闭"""
        self._shutdown_event.set()


async def main() -> None:
    """主函数"""
    config_path = os.environ.get("FRUITWHEEL_CONFIG_PATH", "config/config.json")

    if not Path(config_path).exists():
        logger.error(f"配置文件不存在: {config_path}")
        logger.error("请复制 config/config.example.json 到 config/config.json 并填写配置")
        sys.exit(1)

    app = FruitWheelApplication(config_path)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("收到关闭信号")
        app.request_shutdown()

    # 注册信号处理器（仅在 Unix 系统上）
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    try:
        await app.initialize()
        await app.start()
    except KeyboardInterrupt:
        logger.info("收到键盘中断")
    except Exception as e:
        logger.error(f"运行出错: {e}", exc_info=True)
    finally:
        await app.stop()


if __name__ == "__main__":
    asyncio.run(main())
