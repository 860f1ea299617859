"""
键盘构建器测试
测试回调数据编解码和面板渲染
"""
from hypothesis import given, strategies as st, settings

from fruitwheel.config import GameConfig, Timings
from fruitwheel.keyboard import WheelKeyboardBuilder, WheelAction, format_amount
from fruitwheel.models import Item, RoundRecord, RoundResult, RoundType


@given(
    action=st.sampled_from([a.value for a in WheelAction]),
    param=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_", max_size=12),
)
@settings(max_examples=100)
def test_callback_decode_inverts_encode(action, param):
    data = WheelKeyboardBuilder.encode_callback(action, param)
    assert WheelKeyboardBuilder.decode_callback(data) == (action, param)


def test_decode_rejects_foreign_prefix():
    assert WheelKeyboardBuilder.decode_callback("dice_bet_big") == ("", "")
    assert WheelKeyboardBuilder.decode_callback("") == ("", "")


def test_format_amount():
    assert format_amount(10) == "10"
    assert format_amount(500) == "500"
    assert format_amount(5_000) == "5K"
    assert format_amount(1_000_000) == "1M"
    assert format_amount(1_500) == "1500"


def test_callback_data_fits_telegram_limit(make_engine):
    """所有按钮的回调数据不超过 64 字节"""
    engine = make_engine()
    markup = WheelKeyboardBuilder.build_main_panel(engine.snapshot())

    for row in markup.inline_keyboard:
        for button in row:
            assert len(button.callback_data.encode("utf-8")) <= 64


def test_main_panel_layout(make_engine):
    engine = make_engine()
    markup = WheelKeyboardBuilder.build_main_panel(engine.snapshot())
    rows = markup.inline_keyboard

    # 2 行物品 + 分组 + 筹码 + 宝箱 + 操作
    assert len(rows) == 6
    assert rows[0][0].callback_data == "fw_item_honey"
    assert rows[2][0].callback_data == "fw_group_veg"
    assert rows[3][0].text.startswith("✅")
    assert len(rows[4]) == 5
    assert rows[4][0].text.startswith("🔒")


def test_panel_message_shows_round_and_balance(make_engine, scheduler):
    timings = Timings(banner_delay=1, ready_delay=1, betting_duration=5)
    engine = make_engine(config=GameConfig(timings=timings))
    engine.start()
    scheduler.advance(2)
    engine.place_stake(Item.HONEY, 100)

    text = WheelKeyboardBuilder.format_panel_message(engine.snapshot())

    assert "第 1 局" in text
    assert "剩余 5 秒" in text
    assert "蜂蜜 x45: 100" in text
    assert "99900" in text


def test_history_and_settlement_messages():
    record = RoundRecord(
        round_number=7,
        timestamp=0.0,
        round_type=RoundType.NORMAL,
        winners=(Item.COLA,),
        selected=Item.COLA,
        selected_amount=100,
        total_stake=150,
        payout=1_500,
        result=RoundResult.WIN,
        balance_before=1_000,
        balance_after=2_500,
    )

    history = WheelKeyboardBuilder.format_history([record])
    settlement = WheelKeyboardBuilder.format_settlement_message(record)

    assert "#7" in history
    assert "+1500" in history
    assert "净 +1350" in settlement
    assert "1000 → 2500" in settlement
    assert WheelKeyboardBuilder.format_history([]) == "暂无历史记录"
