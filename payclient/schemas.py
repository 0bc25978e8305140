"""
统一请求/响应 DTO（与渠道无关）

金额字段统一为最小货币单位（如分），换算为主币单位只发生在渠道适配器发起请求时。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from payclient.core.constants import (
    PayOrderDisplayMode,
    PayOrderStatus,
    PayRefundStatus,
    PayTransferStatus,
    PayTransferType,
)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ===== 支付 =====


class PayOrderUnifiedReq(_FrozenModel):
    """统一下单请求"""

    out_trade_no: str = Field(..., min_length=1, max_length=64, description="外部订单号")
    amount: int = Field(..., gt=0, description="支付金额（最小货币单位，如分）")
    currency: str = Field(..., pattern=r"^[A-Z]{3}$", description="币种")
    subject: str = Field(..., min_length=1, max_length=128, description="商品标题")
    body: str | None = Field(None, max_length=128, description="商品描述")
    notify_url: str | None = Field(None, max_length=2048, description="支付结果回调地址")
    return_url: str | None = Field(None, max_length=2048, description="支付完成跳转地址")
    user_ip: str | None = Field(None, description="用户 IP")
    expire_minutes: int | None = Field(None, gt=0, le=1440, description="过期时间（分钟）")
    channel_extras: dict[str, str] = Field(default_factory=dict, description="渠道额外参数")


class PayOrderResp(_FrozenModel):
    """统一下单/查询/回调结果"""

    status: PayOrderStatus
    out_trade_no: str | None = None
    channel_order_no: str | None = None
    channel_user_id: str | None = None
    success_time: datetime | None = None
    display_mode: PayOrderDisplayMode | None = None
    display_content: str | None = None
    channel_error_code: str | None = None
    channel_error_msg: str | None = None
    raw_data: Any = None

    @classmethod
    def waiting_of(
        cls,
        display_mode: PayOrderDisplayMode | None,
        display_content: str | None,
        out_trade_no: str | None,
        raw_data: Any,
        channel_order_no: str | None = None,
    ) -> "PayOrderResp":
        return cls(
            status=PayOrderStatus.waiting,
            display_mode=display_mode,
            display_content=display_content,
            out_trade_no=out_trade_no,
            channel_order_no=channel_order_no,
            raw_data=raw_data,
        )

    @classmethod
    def success_of(
        cls,
        channel_order_no: str | None,
        channel_user_id: str | None,
        success_time: datetime | None,
        out_trade_no: str | None,
        raw_data: Any,
    ) -> "PayOrderResp":
        return cls(
            status=PayOrderStatus.success,
            channel_order_no=channel_order_no,
            channel_user_id=channel_user_id,
            success_time=success_time,
            out_trade_no=out_trade_no,
            raw_data=raw_data,
        )

    @classmethod
    def closed_of(
        cls,
        channel_error_code: str | None,
        channel_error_msg: str | None,
        out_trade_no: str | None,
        raw_data: Any,
    ) -> "PayOrderResp":
        return cls(
            status=PayOrderStatus.closed,
            channel_error_code=channel_error_code,
            channel_error_msg=channel_error_msg,
            out_trade_no=out_trade_no,
            raw_data=raw_data,
        )

    @classmethod
    def failure_of(
        cls,
        channel_error_code: str | None,
        channel_error_msg: str | None,
        out_trade_no: str | None,
        raw_data: Any,
    ) -> "PayOrderResp":
        return cls(
            status=PayOrderStatus.failed,
            channel_error_code=channel_error_code,
            channel_error_msg=channel_error_msg,
            out_trade_no=out_trade_no,
            raw_data=raw_data,
        )

    @classmethod
    def of(
        cls,
        status: PayOrderStatus,
        channel_order_no: str | None,
        channel_user_id: str | None,
        success_time: datetime | None,
        out_trade_no: str | None,
        raw_data: Any,
    ) -> "PayOrderResp":
        return cls(
            status=status,
            channel_order_no=channel_order_no,
            channel_user_id=channel_user_id,
            success_time=success_time,
            out_trade_no=out_trade_no,
            raw_data=raw_data,
        )


class SimulatePayResp(_FrozenModel):
    """模拟支付结果（虚拟账号等测试场景）"""

    status: str | None = None
    message: str | None = None
    raw_data: Any = None


# ===== 退款 =====


class PayRefundUnifiedReq(_FrozenModel):
    """统一退款请求"""

    out_trade_no: str = Field(..., min_length=1, max_length=64, description="外部订单号")
    out_refund_no: str = Field(..., min_length=1, max_length=64, description="外部退款号")
    channel_order_no: str | None = Field(None, description="渠道订单号（部分渠道退款必填）")
    pay_amount: int | None = Field(None, gt=0, description="支付金额（分）")
    refund_amount: int = Field(..., gt=0, description="退款金额（分）")
    currency: str | None = Field(None, pattern=r"^[A-Z]{3}$", description="币种，为空时取渠道配置")
    reason: str | None = Field(None, max_length=256, description="退款原因")
    notify_url: str | None = Field(None, max_length=2048, description="退款结果回调地址")

    @model_validator(mode="after")
    def _check_refund_amount(self) -> "PayRefundUnifiedReq":
        if self.pay_amount is not None and self.refund_amount > self.pay_amount:
            raise ValueError("退款金额不能大于支付金额")
        return self


class PayRefundResp(_FrozenModel):
    """统一退款结果"""

    status: PayRefundStatus
    out_refund_no: str | None = None
    channel_refund_no: str | None = None
    success_time: datetime | None = None
    channel_error_code: str | None = None
    channel_error_msg: str | None = None
    raw_data: Any = None

    @classmethod
    def waiting_of(
        cls, channel_refund_no: str | None, out_refund_no: str | None, raw_data: Any
    ) -> "PayRefundResp":
        return cls(
            status=PayRefundStatus.waiting,
            channel_refund_no=channel_refund_no,
            out_refund_no=out_refund_no,
            raw_data=raw_data,
        )

    @classmethod
    def success_of(
        cls,
        channel_refund_no: str | None,
        success_time: datetime | None,
        out_refund_no: str | None,
        raw_data: Any,
    ) -> "PayRefundResp":
        return cls(
            status=PayRefundStatus.success,
            channel_refund_no=channel_refund_no,
            success_time=success_time,
            out_refund_no=out_refund_no,
            raw_data=raw_data,
        )

    @classmethod
    def failure_of(
        cls,
        channel_error_code: str | None,
        channel_error_msg: str | None,
        out_refund_no: str | None,
        raw_data: Any,
    ) -> "PayRefundResp":
        return cls(
            status=PayRefundStatus.failed,
            channel_error_code=channel_error_code,
            channel_error_msg=channel_error_msg,
            out_refund_no=out_refund_no,
            raw_data=raw_data,
        )


# ===== 转账 =====


class PayTransferUnifiedReq(_FrozenModel):
    """统一转账请求"""

    type: PayTransferType = Field(..., description="转账类型")
    out_transfer_no: str = Field(..., min_length=1, max_length=64, description="外部转账单号")
    amount: int = Field(..., gt=0, description="转账金额（分）")
    currency: str | None = Field(None, pattern=r"^[A-Z]{3}$", description="币种，为空时取渠道配置")
    subject: str = Field(..., min_length=1, max_length=128, description="转账标题")
    user_ip: str | None = Field(None, description="用户 IP")
    user_name: str | None = Field(None, description="收款人姓名")
    bank_code: str | None = Field(None, description="银行编码")
    bank_name: str | None = Field(None, description="银行名称")
    bank_account: str | None = Field(None, description="银行卡号")
    alipay_logon_id: str | None = Field(None, description="支付宝登录号")
    channel_extras: dict[str, str] = Field(default_factory=dict, description="渠道额外参数")

    @model_validator(mode="after")
    def _check_payee(self) -> "PayTransferUnifiedReq":
        if self.type == PayTransferType.alipay_balance:
            required = ("user_name", "alipay_logon_id")
        else:
            required = ("user_name", "bank_code", "bank_account")
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(f"{self.type.value} 转账缺少收款人信息：{', '.join(missing)}")
        return self


class PayTransferResp(_FrozenModel):
    """统一转账结果"""

    status: PayTransferStatus
    out_transfer_no: str | None = None
    channel_transfer_no: str | None = None
    success_time: datetime | None = None
    channel_error_code: str | None = None
    channel_error_msg: str | None = None
    raw_data: Any = None

    @classmethod
    def waiting_of(
        cls, channel_transfer_no: str | None, out_transfer_no: str | None, raw_data: Any
    ) -> "PayTransferResp":
        return cls(
            status=PayTransferStatus.waiting,
            channel_transfer_no=channel_transfer_no,
            out_transfer_no=out_transfer_no,
            raw_data=raw_data,
        )

    @classmethod
    def failure_of(
        cls,
        channel_error_code: str | None,
        channel_error_msg: str | None,
        out_transfer_no: str | None,
        raw_data: Any,
    ) -> "PayTransferResp":
        return cls(
            status=PayTransferStatus.failed,
            channel_error_code=channel_error_code,
            channel_error_msg=channel_error_msg,
            out_transfer_no=out_transfer_no,
            raw_data=raw_data,
        )
