"""
金额换算

统一 DTO 中的金额始终是最小货币单位（如分），发送给渠道时统一换算为主币单位（元）。
换算只允许在这里发生，且每次请求只换算一次。
"""

from decimal import Decimal

MINOR_UNITS_PER_MAJOR = 100


def to_major_units(amount: int) -> Decimal:
    """最小货币单位 -> 主币单位（精确的十进制结果）"""
    return Decimal(amount) / MINOR_UNITS_PER_MAJOR


def format_major_units(amount: int) -> str:
    """换算并格式化为两位小数字符串（支付宝等要求 "12.34" 形式）"""
    return f"{to_major_units(amount):.2f}"


def major_units_number(amount: int) -> int | float:
    """换算为 JSON 数字：整数金额保持 int（IDR 等无小数币种），否则为 float"""
    value = to_major_units(amount)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def major_units_text(amount: int) -> str:
    """换算为字符串：整数金额不带小数（"15000"），否则固定两位小数（"100.50"）"""
    value = major_units_number(amount)
    if isinstance(value, int):
        return str(value)
    return format_major_units(amount)
