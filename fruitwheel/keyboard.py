"""
水果转盘键盘构建器
构建 Telegram Inline Keyboard 和面板文本，只渲染引擎快照
"""
from typing import Tuple, List
from enum import Enum
from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from fruitwheel.models import (
    EngineSnapshot,
    GameMode,
    GamePhase,
    Group,
    GROUP_ITEMS,
    GROUP_NAMES,
    Item,
    ITEM_EMOJI,
    ITEM_NAMES,
    RoundRecord,
    RoundResult,
    RoundType,
)


class WheelAction(Enum):
    """按钮动作类型"""
    ITEM = "item"           # 单个物品下注
    GROUP = "group"         # 分组下注
    CHIP = "chip"           # 选择筹码
    CHEST = "chest"         # 打开宝箱
    MODE = "mode"           # 切换模式
    HISTORY = "history"     # 历史记录
    CLOSE = "close"         # 关闭弹窗


PHASE_NAMES = {
    GamePhase.INTERMISSION: "⏳ 回合即将开始",
    GamePhase.BETTING: "🟢 下注中",
    GamePhase.DRAWING: "🎡 开奖中",
    GamePhase.SHOWTIME: "🏁 结算中",
}

RESULT_NAMES = {
    RoundResult.WIN: "🎉 赢",
    RoundResult.LOSE: "😢 输",
    RoundResult.NOBET: "😐 未下注",
}


def format_amount(amount: int) -> str:
    """金额缩写: 1000 -> 1K, 1000000 -> 1M"""
    if amount >= 1_000_000 and amount % 1_000_000 == 0:
        return f"{amount // 1_000_000}M"
    if amount >= 1_000 and amount % 1_000 == 0:
        return f"{amount // 1_000}K"
    return str(amount)


def item_label(item: Item) -> str:
    return f"{ITEM_EMOJI[item]}{ITEM_NAMES[item]}"


class WheelKeyboardBuilder:
    """水果转盘键盘构建器"""

    # 回调数据前缀
    CALLBACK_PREFIX = "fw_"

    # 每行物品按钮数
    ITEMS_PER_ROW = 4

    @staticmethod
    def encode_callback(action: str, param: str = "") -> str:
        """
        编码回调数据

        Args:
            action: 动作类型
            param: 参数

        Returns:
            编码后的回调数据字符串
        """
        if param:
            return f"{WheelKeyboardBuilder.CALLBACK_PREFIX}{action}_{param}"
        return f"{WheelKeyboardBuilder.CALLBACK_PREFIX}{action}"

    @staticmethod
    def decode_callback(data: str) -> Tuple[str, str]:
        """
        解码回调数据

        Args:
            data: 回调数据字符串

        Returns:
            (action, param) 元组，前缀不匹配时返回 ("", "")
        """
        if not data or not data.startswith(WheelKeyboardBuilder.CALLBACK_PREFIX):
            return "", ""

        content = data[len(WheelKeyboardBuilder.CALLBACK_PREFIX):]
        parts = content.split("_", 1)
        action = parts[0]
        param = parts[1] if len(parts) > 1 else ""

        return action, param

    @classmethod
    def build_main_panel(cls, snapshot: EngineSnapshot) -> InlineKeyboardMarkup:
        """
        构建主面板

        Args:
            snapshot: 引擎快照

        Returns:
            InlineKeyboardMarkup 对象
        """
        keyboard = []

        # 物品行：[🍯蜂蜜 x45] ...
        items = list(Item)
        for start in range(0, len(items), cls.ITEMS_PER_ROW):
            keyboard.append([
                InlineKeyboardButton(
                    f"{ITEM_EMOJI[item]} x{snapshot.multipliers[item]}",
                    callback_data=cls.encode_callback(WheelAction.ITEM.value, item.value)
                )
                for item in items[start:start + cls.ITEMS_PER_ROW]
            ])

        # 分组行：[蔬果 x4] [饮品 x4]
        keyboard.append([
            InlineKeyboardButton(
                f"{GROUP_NAMES[group]} ({''.join(ITEM_EMOJI[i] for i in GROUP_ITEMS[group])})",
                callback_data=cls.encode_callback(WheelAction.GROUP.value, group.value)
            )
            for group in Group
        ])

        # 筹码行，选中的筹码加标记
        keyboard.append([
            InlineKeyboardButton(
                f"{'✅' if index == snapshot.selected_chip else ''}{format_amount(value)}",
                callback_data=cls.encode_callback(WheelAction.CHIP.value, str(index))
            )
            for index, value in enumerate(snapshot.chips)
        ])

        # 宝箱行：已打开 📭，可领取 🎁，未解锁 🔒
        chest_row = []
        for index, milestone in enumerate(snapshot.milestones):
            if milestone.opened:
                icon = "📭"
            elif milestone.ready:
                icon = "🎁"
            else:
                icon = "🔒"
            chest_row.append(InlineKeyboardButton(
                f"{icon}{format_amount(milestone.threshold)}",
                callback_data=cls.encode_callback(WheelAction.CHEST.value, str(index))
            ))
        keyboard.append(chest_row)

        # 操作行：[模式] [历史]
        target = GameMode.BASIC if snapshot.mode == GameMode.ADVANCED else GameMode.ADVANCED
        keyboard.append([
            InlineKeyboardButton(
                "切换到高级模式" if target == GameMode.ADVANCED else "切换到基础模式",
                callback_data=cls.encode_callback(WheelAction.MODE.value, target.value)
            ),
            InlineKeyboardButton(
                "📜 历史",
                callback_data=cls.encode_callback(WheelAction.HISTORY.value)
            ),
        ])

        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def build_popup_close() -> InlineKeyboardMarkup:
        """宝箱奖励弹窗的关闭按钮"""
        return InlineKeyboardMarkup([[
            InlineKeyboardButton(
                "收下",
                callback_data=WheelKeyboardBuilder.encode_callback(WheelAction.CLOSE.value)
            )
        ]])

    @staticmethod
    def format_panel_message(snapshot: EngineSnapshot) -> str:
        """
        格式化主面板文本

        显示回合、阶段、倒计时、下注、开奖结果、余额和今日赢取

        Args:
            snapshot: 引擎快照

        Returns:
            面板文本
        """
        round_label = "🏆 奖池回合" if snapshot.round_type == RoundType.JACKPOT else "普通回合"
        msg = f"🎡 水果转盘 第 {snapshot.round_number} 局 | {round_label}\n"
        msg += f"{PHASE_NAMES[snapshot.phase]}"
        if snapshot.phase == GamePhase.BETTING:
            msg += f" | ⏰ 剩余 {snapshot.time_left} 秒"
        msg += "\n"
        msg += "━━━━━━━━━━━━━━━\n"

        staked = [(item, amount) for item, amount in snapshot.stakes.items() if amount > 0]
        if staked:
            for item, amount in staked:
                msg += f"• {item_label(item)} x{snapshot.multipliers[item]}: {amount}\n"
            msg += f"💰 本局下注: {snapshot.total_stake} ({len(staked)}/{snapshot.max_stakes})\n"
        else:
            msg += f"本局尚未下注（最多 {snapshot.max_stakes} 个物品）\n"

        if snapshot.winners:
            msg += "━━━━━━━━━━━━━━━\n"
            if snapshot.winning_group is not None:
                msg += f"开奖: {GROUP_NAMES[snapshot.winning_group]} "
            else:
                msg += "开奖: "
            msg += " ".join(item_label(item) for item in snapshot.winners) + "\n"
        if snapshot.payout is not None and snapshot.result is not None:
            msg += f"{RESULT_NAMES[snapshot.result]} 赔付: {snapshot.payout}\n"

        msg += "━━━━━━━━━━━━━━━\n"
        msg += f"💳 余额: {snapshot.balance} | 📈 今日赢取: {snapshot.today_win}\n"
        msg += f"🪙 筹码: {format_amount(snapshot.chips[snapshot.selected_chip])}"
        msg += f" | 模式: {'高级' if snapshot.mode == GameMode.ADVANCED else '基础'}"
        return msg

    @staticmethod
    def format_history(records: List[RoundRecord]) -> str:
        """
        格式化历史记录（新的在前）

        Args:
            records: 回合记录列表

        Returns:
            历史记录文本
        """
        if not records:
            return "暂无历史记录"

        msg = "📜 最近回合:\n"
        msg += "━━━━━━━━━━━━━━━\n"
        for record in records:
            winners = "".join(ITEM_EMOJI[item] for item in record.winners)
            mark = "🏆" if record.round_type == RoundType.JACKPOT else "#"
            msg += f"{mark}{record.round_number} {winners} {RESULT_NAMES[record.result]}"
            if record.selected is not None:
                msg += f" | 主押 {ITEM_EMOJI[record.selected]} {record.selected_amount}"
            if record.payout > 0:
                msg += f" | +{record.payout}"
            msg += "\n"
        return msg.rstrip("\n")

    @staticmethod
    def format_settlement_message(record: RoundRecord) -> str:
        """
        格式化单局结算消息

        Args:
            record: 回合记录

        Returns:
            结算消息文本
        """
        winners = " ".join(item_label(item) for item in record.winners)
        msg = f"🎡 第 {record.round_number} 局结算\n"
        msg += "━━━━━━━━━━━━━━━\n"
        msg += f"开奖: {winners}\n"
        if record.result == RoundResult.NOBET:
            msg += "本局未下注\n"
        else:
            net = record.payout - record.total_stake
            if net > 0:
                msg += f"🎉 赔付 {record.payout}（净 +{net}）\n"
            elif net < 0:
                msg += f"😢 赔付 {record.payout}（净 {net}）\n"
            else:
                msg += f"😐 赔付 {record.payout}（±0）\n"
        msg += "━━━━━━━━━━━━━━━\n"
        msg += f"余额: {record.balance_before} → {record.balance_after}"
        return msg

