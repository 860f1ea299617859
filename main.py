#!/usr/bin/env python3
"""
水果转盘机器人入口文件
"""
import asyncio
from fruitwheel.main import main

if __name__ == "__main__":
    asyncio.run(main())
