"""
赔付计算器属性测试
使用 Hypothesis 验证普通回合和奖池回合的赔付规则
"""
import pytest
from hypothesis import given, strategies as st, settings

from fruitwheel.config import GameConfig
from fruitwheel.models import Item, Group, GROUP_ITEMS, RoundResult, RoundType
from fruitwheel.payout_calculator import PayoutCalculator


CONFIG = GameConfig()

item_strategy = st.sampled_from(list(Item))
group_strategy = st.sampled_from(list(Group))
amount_strategy = st.integers(min_value=1, max_value=100_000)

# 随机下注表（部分物品为 0）
stakes_strategy = st.dictionaries(
    keys=item_strategy,
    values=st.integers(min_value=0, max_value=100_000),
).map(lambda d: {item: d.get(item, 0) for item in Item})


# ============================================================================
# 普通回合
# ============================================================================

@given(stakes=stakes_strategy, winner=item_strategy)
@settings(max_examples=100)
def test_normal_payout_is_stake_times_multiplier(stakes, winner):
    """普通回合赔付 = 中奖物品下注 * 倍率，其他物品的下注不影响赔付"""
    result = PayoutCalculator.calculate_normal(stakes, winner, CONFIG)

    assert result.payout == stakes[winner] * CONFIG.multiplier(winner)
    assert result.bonus == 0


@given(stakes=stakes_strategy, winner=item_strategy)
@settings(max_examples=100)
def test_normal_result_classification(stakes, winner):
    """有赔付为 WIN，未下注为 NOBET，其余为 LOSE"""
    result = PayoutCalculator.calculate_normal(stakes, winner, CONFIG)
    total = sum(stakes.values())

    if stakes[winner] > 0:
        assert result.result == RoundResult.WIN
    elif total == 0:
        assert result.result == RoundResult.NOBET
    else:
        assert result.result == RoundResult.LOSE


def test_normal_honey_example():
    """蜂蜜下注 100，倍率 45，赔付 4500"""
    stakes = {item: 0 for item in Item}
    stakes[Item.HONEY] = 100
    stakes[Item.TOMATO] = 50

    result = PayoutCalculator.calculate_normal(stakes, Item.HONEY, CONFIG)

    assert result.payout == 4500
    assert result.result == RoundResult.WIN
    assert result.matched == (Item.HONEY,)


def test_normal_no_stakes_is_nobet():
    stakes = {item: 0 for item in Item}
    result = PayoutCalculator.calculate_normal(stakes, Item.WATER, CONFIG)
    assert result.payout == 0
    assert result.result == RoundResult.NOBET


# ============================================================================
# 奖池回合
# ============================================================================

@given(group=group_strategy, amount=amount_strategy)
@settings(max_examples=100)
def test_jackpot_exact_four_gets_full_bonus(group, amount):
    """恰好押中分组全部四个物品且组外无下注: 基础赔付 + 全额奖池"""
    stakes = {item: 0 for item in Item}
    for item in GROUP_ITEMS[group]:
        stakes[item] = amount

    result = PayoutCalculator.calculate_jackpot(stakes, group, CONFIG)

    expected_base = sum(amount * CONFIG.multiplier(item) for item in GROUP_ITEMS[group])
    assert result.exact_four is True
    assert result.bonus == CONFIG.jackpot_bonus
    assert result.payout == expected_base + CONFIG.jackpot_bonus
    assert result.result == RoundResult.WIN


@given(stakes=stakes_strategy, group=group_strategy)
@settings(max_examples=200)
def test_jackpot_bonus_proportional_to_matches(stakes, group):
    """未满足恰好四个时，奖池奖励 = 奖池 * 命中数 / 4（四舍五入）"""
    result = PayoutCalculator.calculate_jackpot(stakes, group, CONFIG)
    group_items = GROUP_ITEMS[group]
    matched = [item for item in group_items if stakes[item] > 0]

    if not matched:
        assert result.payout == 0
        return

    base = sum(stakes[item] * CONFIG.multiplier(item) for item in matched)
    assert result.base_win == base

    if result.exact_four:
        assert result.bonus == CONFIG.jackpot_bonus
    else:
        assert result.bonus == PayoutCalculator.round_half_up(
            CONFIG.jackpot_bonus * len(matched) / 4
        )
    assert result.payout == base + result.bonus


def test_jackpot_four_matches_with_outside_stake_is_proportional():
    """押中四个但组外也有下注时，按 4/4 比例计算（数值上等于全额）但不算恰好四个"""
    stakes = {item: 0 for item in Item}
    for item in GROUP_ITEMS[Group.VEG]:
        stakes[item] = 10
    stakes[Item.HONEY] = 10

    result = PayoutCalculator.calculate_jackpot(stakes, Group.VEG, CONFIG)

    assert result.exact_four is False
    assert result.bonus == CONFIG.jackpot_bonus
    assert result.payout == 4 * 10 * 5 + CONFIG.jackpot_bonus


def test_jackpot_partial_match_rounds_half_up():
    """奖池 50001 命中 1 个: 12500.25 -> 12500；命中 2 个: 25000.5 -> 25001"""
    config = GameConfig(jackpot_bonus=50_001)
    stakes = {item: 0 for item in Item}
    stakes[Item.TOMATO] = 10

    one = PayoutCalculator.calculate_jackpot(stakes, Group.VEG, config)
    assert one.bonus == 12500

    stakes[Item.LEMON] = 10
    two = PayoutCalculator.calculate_jackpot(stakes, Group.VEG, config)
    assert two.bonus == 25001


def test_jackpot_no_match_with_stakes_is_lose():
    stakes = {item: 0 for item in Item}
    stakes[Item.HONEY] = 100

    result = PayoutCalculator.calculate_jackpot(stakes, Group.VEG, CONFIG)

    assert result.payout == 0
    assert result.result == RoundResult.LOSE


def test_calculate_requires_winner_or_group():
    stakes = {item: 0 for item in Item}
    with pytest.raises(ValueError):
        PayoutCalculator.calculate(RoundType.NORMAL, stakes, CONFIG)
    with pytest.raises(ValueError):
        PayoutCalculator.calculate(RoundType.JACKPOT, stakes, CONFIG)


@given(value=st.floats(min_value=0, max_value=1e9, allow_nan=False))
@settings(max_examples=100)
def test_round_half_up_matches_floor_plus_half(value):
    import math
    assert PayoutCalculator.round_half_up(value) == math.floor(value + 0.5)


def test_normal_stake_on_five_times_item():
    """下注 100 于倍率 5 的中奖物品赔付 500，下注于未中奖物品赔付 0"""
    stakes = {item: 0 for item in Item}
    stakes[Item.TOMATO] = 100

    assert PayoutCalculator.calculate_normal(stakes, Item.TOMATO, CONFIG).payout == 500
    lost = PayoutCalculator.calculate_normal(stakes, Item.LEMON, CONFIG)
    assert lost.payout == 0
    assert lost.result == RoundResult.LOSE


def test_jackpot_two_of_four_gets_half_bonus():
    stakes = {item: 0 for item in Item}
    stakes[Item.HONEY] = 50
    stakes[Item.MILK] = 50

    result = PayoutCalculator.calculate_jackpot(stakes, Group.DRINK, CONFIG)

    assert result.exact_four is False
    assert result.bonus == 25_000
    assert result.payout == 50 * 45 + 50 * 25 + 25_000
