"""
数据库管理模块
提供 SQLite 连接池、表结构初始化和事务管理，用于归档回合记录和账户快照
"""
import aiosqlite
import asyncio
from typing import Optional, List
from contextlib import asynccontextmanager


class DatabaseManager:
    """数据库管理器，使用连接池"""

    def __init__(self, db_path: str, pool_size: int = 4):
        """
        初始化数据库管理器

        Args:
            db_path: 数据库文件路径
            pool_size: 连接池大小
        """
        self.db_path = db_path
        self.pool_size = pool_size
        self._pool: asyncio.Queue = asyncio.Queue(maxsize=pool_size)
        self._initialized = False
        self._init_lock = asyncio.Lock()
        # 主连接用于建表
        self._connection: Optional[aiosqlite.Connection] = None

    async def _create_connection(self) -> aiosqlite.Connection:
        """创建单个数据库连接"""
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        # 优化 SQLite 性能
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA temp_store=MEMORY")
        return conn

    async def connect(self) -> None:
        """初始化连接池"""
        async with self._init_lock:
            if self._initialized:
                return
            for _ in range(self.pool_size):
                conn = await self._create_connection()
                await self._pool.put(conn)
            self._connection = await self._create_connection()
            self._initialized = True

    async def close(self) -> None:
        """关闭所有连接"""
        if self._connection:
            await self._connection.close()
            self._connection = None
        while not self._pool.empty():
            conn = await self._pool.get()
            await conn.close()
        self._initialized = False

    @asynccontextmanager
    async def get_connection(self):
        """从连接池获取连接"""
        conn = await self._pool.get()
        try:
            yield conn
        finally:
            await self._pool.put(conn)

    async def initialize(self) -> None:
        """
        创建表结构，启用 WAL 模式
        WAL (Write-Ahead Logging) 模式允许并发读写
        """
        await self.connect()

        # 账户快照表
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                player_id TEXT PRIMARY KEY,
                balance INTEGER NOT NULL DEFAULT 0,
                lifetime_stake INTEGER NOT NULL DEFAULT 0,
                today_win INTEGER NOT NULL DEFAULT 0,
                progress_day TEXT,
                milestones_opened TEXT NOT NULL DEFAULT '',
                updated_at INTEGER NOT NULL
            )
        """)

        # 回合记录归档表
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS round_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                player_id TEXT NOT NULL,
                round_number INTEGER NOT NULL,
                timestamp REAL NOT NULL,
                round_type TEXT NOT NULL,
                winners TEXT NOT NULL,
                selected TEXT,
                selected_amount INTEGER NOT NULL DEFAULT 0,
                total_stake INTEGER NOT NULL DEFAULT 0,
                payout INTEGER NOT NULL,
                result TEXT NOT NULL,
                balance_before INTEGER NOT NULL,
                balance_after INTEGER NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_player_rounds
            ON round_records(player_id, round_number)
        """)

        await self._connection.commit()

    async def execute(self, query: str, params: tuple = ()) -> None:
        """
        执行单个查询（INSERT, UPDATE, DELETE）

        Args:
            query: SQL 查询语句
            params: 查询参数
        """
        async with self.get_connection() as conn:
            await conn.execute(query, params)
            await conn.commit()

    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[dict]:
        """
        查询单行数据

        Args:
            query: SQL 查询语句
            params: 查询参数

        Returns:
            查询结果字典，如果没有结果返回 None
        """
        async with self.get_connection() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
            if row:
                return dict(row)
            return None

    async def fetch_all(self, query: str, params: tuple = ()) -> List[dict]:
        """
        查询多行数据

        Args:
            query: SQL 查询语句
            params: 查询参数

        Returns:
            查询结果列表
        """
        async with self.get_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]
