import enum


class ChannelCode(str, enum.Enum):
    """支付渠道编码（渠道 + 支付方式）"""

    alipay_qr = "alipay_qr"  # 支付宝扫码支付
    alipay_pc = "alipay_pc"  # 支付宝电脑网站支付

    xendit_invoice = "xendit_invoice"
    xendit_card = "xendit_card"
    xendit_ewallet_ovo = "xendit_ewallet_ovo"
    xendit_ewallet_dana = "xendit_ewallet_dana"
    xendit_va_bca = "xendit_va_bca"
    xendit_va_bni = "xendit_va_bni"
    xendit_va_bri = "xendit_va_bri"
    xendit_va_bsi = "xendit_va_bsi"
    xendit_va_bjb = "xendit_va_bjb"
    xendit_va_mandiri = "xendit_va_mandiri"
    xendit_va_permata = "xendit_va_permata"

    ezeelink_qr = "ezeelink_qr"


class PayOrderStatus(str, enum.Enum):
    """支付订单状态"""

    waiting = "waiting"  # 未支付
    success = "success"  # 支付成功
    closed = "closed"  # 已关闭（过期、取消）
    failed = "failed"  # 下单失败


class PayRefundStatus(str, enum.Enum):
    """退款状态"""

    waiting = "waiting"  # 退款中
    success = "success"  # 退款成功
    failed = "failed"  # 退款失败


class PayTransferStatus(str, enum.Enum):
    """转账状态"""

    waiting = "waiting"
    in_progress = "in_progress"
    success = "success"
    closed = "closed"
    failed = "failed"


class PayOrderDisplayMode(str, enum.Enum):
    """下单结果展示方式"""

    url = "url"  # 跳转链接
    qr_code_url = "qr_code_url"  # 二维码内容
    iframe = "iframe"  # 内嵌页面
    virtual_account = "virtual_account"  # 虚拟账号（display_content 为账号）


class PayTransferType(str, enum.Enum):
    """转账类型"""

    alipay_balance = "alipay_balance"  # 支付宝余额
    bank_card = "bank_card"  # 银行卡


class PayCapability(str, enum.Enum):
    """渠道能力（用于能力查询）"""

    order = "order"
    refund = "refund"
    transfer = "transfer"
    simulate_payment = "simulate_payment"
    virtual_account_notify = "virtual_account_notify"
