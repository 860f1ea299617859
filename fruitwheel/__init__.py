# Fruit Wheel Game Package

from fruitwheel.round_engine import RoundEngine, EngineEvent
from fruitwheel.payout_calculator import PayoutCalculator, PayoutResult
from fruitwheel.config import GameConfig, ConfigOverrides, resolve_config
