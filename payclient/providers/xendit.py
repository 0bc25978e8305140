"""
Xendit Adapter

- 发票支付（Invoice）：https://developers.xendit.co/api-reference/#create-invoice
- 支付请求（卡 / 电子钱包 / 虚拟账号）：https://developers.xendit.co/api-reference/#create-payment-request
- 退款：https://developers.xendit.co/api-reference/#create-refund
- 转账（Disbursement）：https://developers.xendit.co/api-reference/#create-disbursement
"""

from datetime import datetime, timedelta, UTC
from typing import Any

from pydantic import Field

from payclient.core.constants import (
    ChannelCode,
    PayCapability,
    PayOrderDisplayMode,
    PayOrderStatus,
    PayRefundStatus,
    PayTransferStatus,
    PayTransferType,
)
from payclient.core.exceptions import (
    ConfigException,
    InvalidNotifyException,
    ValidationException,
)
from payclient.core.money import major_units_number
from payclient.schemas import (
    PayOrderResp,
    PayOrderUnifiedReq,
    PayRefundResp,
    PayRefundUnifiedReq,
    PayTransferResp,
    PayTransferUnifiedReq,
    SimulatePayResp,
)
from .base import AbstractPayClient, PayClientConfig

SUPPORTED_CURRENCIES = frozenset({"IDR", "PHP", "THB", "VND", "MYR"})

# 渠道编码 -> (payment_method.type, channel_code)
PAYMENT_METHODS: dict[ChannelCode, tuple[str, str | None]] = {
    ChannelCode.xendit_card: ("CARD", None),
    ChannelCode.xendit_ewallet_ovo: ("EWALLET", "OVO"),
    ChannelCode.xendit_ewallet_dana: ("EWALLET", "DANA"),
    ChannelCode.xendit_va_bca: ("VIRTUAL_ACCOUNT", "BCA"),
    ChannelCode.xendit_va_bni: ("VIRTUAL_ACCOUNT", "BNI"),
    ChannelCode.xendit_va_bri: ("VIRTUAL_ACCOUNT", "BRI"),
    ChannelCode.xendit_va_bsi: ("VIRTUAL_ACCOUNT", "BSI"),
    ChannelCode.xendit_va_bjb: ("VIRTUAL_ACCOUNT", "BJB"),
    ChannelCode.xendit_va_mandiri: ("VIRTUAL_ACCOUNT", "MANDIRI"),
    ChannelCode.xendit_va_permata: ("VIRTUAL_ACCOUNT", "PERMATA"),
}

REFUND_REASONS = frozenset(
    {"FRAUDULENT", "DUPLICATE", "REQUESTED_BY_CUSTOMER", "CANCELLATION", "OTHERS"}
)

# 发票状态 -> 订单状态
INVOICE_STATUS = {
    "PENDING": PayOrderStatus.waiting,
    "PAID": PayOrderStatus.success,
    "SETTLED": PayOrderStatus.success,
    "EXPIRED": PayOrderStatus.closed,
}

# 支付请求状态 -> 订单状态
PAYMENT_REQUEST_STATUS = {
    "REQUIRES_ACTION": PayOrderStatus.waiting,
    "PENDING": PayOrderStatus.waiting,
    "SUCCEEDED": PayOrderStatus.success,
    "FAILED": PayOrderStatus.failed,
    "CANCELED": PayOrderStatus.closed,
    "EXPIRED": PayOrderStatus.closed,
}

REFUND_STATUS = {
    "PENDING": PayRefundStatus.waiting,
    "SUCCEEDED": PayRefundStatus.success,
    "FAILED": PayRefundStatus.failed,
    "CANCELLED": PayRefundStatus.failed,
}

DISBURSEMENT_STATUS = {
    "PENDING": PayTransferStatus.in_progress,
    "COMPLETED": PayTransferStatus.success,
    "FAILED": PayTransferStatus.failed,
}


class XenditPayClientConfig(PayClientConfig):
    """Xendit 渠道配置"""

    api_key: str = Field(..., min_length=1)
    callback_token: str = ""  # 回调校验 token（x-callback-token），为空时不校验
    base_url: str = "https://api.xendit.co"
    currency: str = Field(default="IDR", pattern=r"^[A-Z]{3}$")
    expire_minutes: int = Field(default=24 * 60, ge=1)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class XenditPayClient(AbstractPayClient[XenditPayClientConfig]):
    """
    Xendit 支付客户端

    同一个类服务所有 Xendit 渠道，具体支付方式由渠道编码决定：
    xendit_invoice 走发票接口，其余渠道走 payment_requests 接口
    """

    config_class = XenditPayClientConfig
    transfer_types = frozenset({PayTransferType.bank_card})

    def __init__(self, channel_code, config, **kwargs):
        super().__init__(channel_code, config, **kwargs)

        self.is_invoice = self.channel_code == ChannelCode.xendit_invoice
        if not self.is_invoice and self.channel_code not in PAYMENT_METHODS:
            raise ConfigException(f"渠道({self.channel_code.value}) 不是 Xendit 渠道")

        self.method_type, self.method_channel = PAYMENT_METHODS.get(
            self.channel_code, ("INVOICE", None)
        )
        capabilities = {PayCapability.order, PayCapability.refund, PayCapability.transfer}
        if self.method_type == "VIRTUAL_ACCOUNT":
            capabilities |= {
                PayCapability.simulate_payment,
                PayCapability.virtual_account_notify,
            }
        self.capabilities = frozenset(capabilities)
        self._invoker = None

    def do_init(self) -> None:
        # 先切换再关闭，进行中的请求仍持有旧 invoker
        old, self._invoker = self._invoker, self._create_invoker()
        if old is not None:
            old.close()
        self._auth = (self.config.api_key, "")

    def close(self) -> None:
        if self._invoker is not None:
            self._invoker.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        return self._invoker.request_json(
            method, f"{self.config.base_url}{path}", auth=self._auth, **kwargs
        )

    # ============ 支付相关 ==========

    def validate_order_request(self, req: PayOrderUnifiedReq) -> None:
        if req.currency not in SUPPORTED_CURRENCIES:
            raise ValidationException(
                f"Xendit 不支持币种 {req.currency}",
                details={"supported": sorted(SUPPORTED_CURRENCIES)},
            )
        extras = req.channel_extras
        if self.method_type == "VIRTUAL_ACCOUNT" and not extras.get("customer_name"):
            raise ValidationException("虚拟账号支付需要 channel_extras.customer_name")
        if self.method_type == "CARD" and not (
            req.return_url or extras.get("success_return_url")
        ):
            raise ValidationException("卡支付需要 return_url")
        if self.method_channel == "OVO" and not extras.get("mobile_number"):
            raise ValidationException("OVO 支付需要 channel_extras.mobile_number")
        if self.method_channel == "DANA" and not (
            req.return_url or extras.get("success_return_url")
        ):
            raise ValidationException("DANA 支付需要 return_url")

    def do_place_order(self, req: PayOrderUnifiedReq) -> PayOrderResp:
        if self.is_invoice:
            return self._create_invoice(req)

        body = {
            "reference_id": req.out_trade_no,
            "amount": major_units_number(req.amount),
            "currency": req.currency,
            "description": req.subject,
            "payment_method": self._payment_method(req),
            "metadata": {"out_trade_no": req.out_trade_no},
        }
        data = self._request(
            "POST",
            "/payment_requests",
            json_body=body,
            idempotency_key=self._new_idempotency_key(),
        )
        return self._payment_request_resp(data, raw_data=data)

    def _create_invoice(self, req: PayOrderUnifiedReq) -> PayOrderResp:
        expire_minutes = req.expire_minutes or self.config.expire_minutes
        body = {
            "external_id": req.out_trade_no,
            "amount": major_units_number(req.amount),
            "currency": req.currency,
            "description": req.body or req.subject,
            "invoice_duration": expire_minutes * 60,
        }
        if req.return_url:
            body["success_redirect_url"] = req.return_url
        data = self._request("POST", "/v2/invoices", json_body=body)
        return self._invoice_resp(data, raw_data=data)

    def _payment_method(self, req: PayOrderUnifiedReq) -> dict[str, Any]:
        extras = req.channel_extras
        return_url = extras.get("success_return_url") or req.return_url

        if self.method_type == "CARD":
            return {
                "type": "CARD",
                "reusability": "ONE_TIME_USE",
                "card": {
                    "channel_properties": {
                        "success_return_url": return_url,
                        "failure_return_url": extras.get("failure_return_url") or return_url,
                    },
                },
            }

        if self.method_type == "EWALLET":
            if self.method_channel == "OVO":
                properties = {"mobile_number": extras["mobile_number"]}
            else:
                properties = {"success_return_url": return_url}
            return {
                "type": "EWALLET",
                "reusability": "ONE_TIME_USE",
                "ewallet": {
                    "channel_code": self.method_channel,
                    "channel_properties": properties,
                },
            }

        expire_minutes = req.expire_minutes or self.config.expire_minutes
        expires_at = datetime.now(UTC) + timedelta(minutes=expire_minutes)
        return {
            "type": "VIRTUAL_ACCOUNT",
            "reusability": "ONE_TIME_USE",
            "virtual_account": {
                "channel_code": self.method_channel,
                "channel_properties": {
                    "customer_name": extras["customer_name"],
                    "expires_at": expires_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
                },
            },
        }

    def _invoice_resp(self, data: dict[str, Any], raw_data: Any) -> PayOrderResp:
        status = INVOICE_STATUS.get(data.get("status"))
        if status is None:
            raise ValueError(f"发票状态({data.get('status')}) 不正确")
        if status == PayOrderStatus.waiting:
            return PayOrderResp.waiting_of(
                PayOrderDisplayMode.url,
                data.get("invoice_url"),
                data.get("external_id"),
                raw_data,
                channel_order_no=data.get("id"),
            )
        if status == PayOrderStatus.success:
            return PayOrderResp.success_of(
                data.get("id"),
                data.get("user_id"),
                _parse_time(data.get("paid_at")),
                data.get("external_id"),
                raw_data,
            )
        return PayOrderResp(
            status=status,
            channel_order_no=data.get("id"),
            out_trade_no=data.get("external_id"),
            raw_data=raw_data,
        )

    def _payment_request_resp(self, data: dict[str, Any], raw_data: Any) -> PayOrderResp:
        status = PAYMENT_REQUEST_STATUS.get(data.get("status"))
        if status is None:
            raise ValueError(f"支付请求状态({data.get('status')}) 不正确")

        channel_order_no = data.get("payment_request_id") or data.get("id")
        out_trade_no = data.get("reference_id")

        if status == PayOrderStatus.success:
            return PayOrderResp.success_of(
                channel_order_no,
                data.get("customer_id"),
                _parse_time(data.get("updated") or data.get("created")),
                out_trade_no,
                raw_data,
            )
        if status == PayOrderStatus.failed:
            return PayOrderResp.failure_of(
                data.get("failure_code"), data.get("failure_message"), out_trade_no, raw_data
            )
        if status == PayOrderStatus.closed:
            return PayOrderResp.closed_of(
                data.get("failure_code"), data.get("status"), out_trade_no, raw_data
            )

        display_mode, display_content = self._display_of(data)
        return PayOrderResp.waiting_of(
            display_mode,
            display_content,
            out_trade_no,
            raw_data,
            channel_order_no=channel_order_no,
        )

    @staticmethod
    def _display_of(data: dict[str, Any]) -> tuple[PayOrderDisplayMode | None, str | None]:
        actions = data.get("actions") or []
        if actions:
            # 优先使用移动端链接，其次网页链接
            action = next((a for a in actions if a.get("url_type") == "MOBILE"), None)
            if action is None:
                action = next((a for a in actions if a.get("url_type") == "WEB"), None)
            return PayOrderDisplayMode.iframe, action.get("url") if action else None

        virtual_account = (data.get("payment_method") or {}).get("virtual_account") or {}
        account_number = (virtual_account.get("channel_properties") or {}).get(
            "virtual_account_number"
        )
        if account_number:
            return PayOrderDisplayMode.virtual_account, account_number
        return None, None

    def do_parse_order_notification(self, params: dict[str, str], body: str) -> PayOrderResp:
        self._verify_callback_token(params)
        payload = self._json_object(body)

        if self.is_invoice:
            return self._invoice_resp(payload, raw_data=body)

        event = payload.get("event", "")
        if not event.startswith("payment."):
            raise InvalidNotifyException(f"回调事件({event}) 不是支付事件")
        return self._payment_request_resp(self._json_object(body, "data"), raw_data=body)

    def do_get_order(self, out_trade_no: str) -> PayOrderResp:
        if self.is_invoice:
            items = self._request("GET", "/v2/invoices", params={"external_id": out_trade_no})
            if not items:
                return PayOrderResp.closed_of("NOT_FOUND", "订单不存在", out_trade_no, items)
            return self._invoice_resp(items[0], raw_data=items[0])

        data = self._request(
            "GET", "/payment_requests", params={"reference_id": out_trade_no}
        )
        items = data.get("data") or []
        if not items:
            return PayOrderResp.closed_of("NOT_FOUND", "订单不存在", out_trade_no, data)
        return self._payment_request_resp(items[0], raw_data=items[0])

    def _verify_callback_token(self, params: dict[str, str]) -> None:
        if not self.config.callback_token:
            return
        token = next(
            (v for k, v in params.items() if k.lower() == "x-callback-token"), None
        )
        if token != self.config.callback_token:
            raise InvalidNotifyException("Xendit 回调 token 校验失败")

    # ============ 退款相关 ==========

    def do_place_refund(self, req: PayRefundUnifiedReq) -> PayRefundResp:
        if not req.channel_order_no:
            raise ValidationException("Xendit 退款需要 channel_order_no")

        reason = (req.reason or "").upper()
        body = {
            "reference_id": req.out_refund_no,
            "amount": major_units_number(req.refund_amount),
            "currency": req.currency or self.config.currency,
            "reason": reason if reason in REFUND_REASONS else "REQUESTED_BY_CUSTOMER",
            "metadata": {"out_trade_no": req.out_trade_no},
        }
        if self.is_invoice:
            body["invoice_id"] = req.channel_order_no
        else:
            body["payment_request_id"] = req.channel_order_no

        data = self._request(
            "POST",
            "/refunds",
            json_body=body,
            idempotency_key=self._new_idempotency_key(),
        )
        return self._refund_resp(data, raw_data=data)

    @staticmethod
    def _refund_resp(data: dict[str, Any], raw_data: Any) -> PayRefundResp:
        status = REFUND_STATUS.get(data.get("status"))
        if status is None:
            raise ValueError(f"退款状态({data.get('status')}) 不正确")
        if status == PayRefundStatus.success:
            return PayRefundResp.success_of(
                data.get("id"),
                _parse_time(data.get("updated")),
                data.get("reference_id"),
                raw_data,
            )
        if status == PayRefundStatus.failed:
            return PayRefundResp.failure_of(
                data.get("failure_code"), data.get("status"), data.get("reference_id"), raw_data
            )
        return PayRefundResp.waiting_of(data.get("id"), data.get("reference_id"), raw_data)

    def do_parse_refund_notification(self, params: dict[str, str], body: str) -> PayRefundResp:
        self._verify_callback_token(params)
        payload = self._json_object(body)
        event = payload.get("event", "")
        if not event.startswith("refund."):
            raise InvalidNotifyException(f"回调事件({event}) 不是退款事件")
        return self._refund_resp(self._json_object(body, "data"), raw_data=body)

    def do_get_refund(self, out_trade_no: str, out_refund_no: str) -> PayRefundResp:
        data = self._request("GET", "/refunds", params={"reference_id": out_refund_no})
        items = data.get("data") or []
        if not items:
            return PayRefundResp.failure_of("NOT_FOUND", "退款单不存在", out_refund_no, data)
        return self._refund_resp(items[0], raw_data=items[0])

    # ============ 转账相关 ==========

    def do_place_transfer(self, req: PayTransferUnifiedReq) -> PayTransferResp:
        body = {
            "external_id": req.out_transfer_no,
            "amount": major_units_number(req.amount),
            "bank_code": req.bank_code,
            "account_holder_name": req.user_name,
            "account_number": req.bank_account,
            "description": req.subject,
        }
        data = self._request(
            "POST",
            "/disbursements",
            json_body=body,
            idempotency_key=self._new_idempotency_key(),
            idempotency_header="X-IDEMPOTENCY-KEY",
        )
        return self._transfer_resp(data)

    @staticmethod
    def _transfer_resp(data: dict[str, Any]) -> PayTransferResp:
        status = DISBURSEMENT_STATUS.get(data.get("status"))
        if status is None:
            raise ValueError(f"转账状态({data.get('status')}) 不正确")
        if status == PayTransferStatus.failed:
            return PayTransferResp.failure_of(
                data.get("failure_code"), data.get("status"), data.get("external_id"), data
            )
        return PayTransferResp(
            status=status,
            channel_transfer_no=data.get("id"),
            out_transfer_no=data.get("external_id"),
            raw_data=data,
        )

    def do_get_transfer(self, out_transfer_no: str, type: PayTransferType) -> PayTransferResp:
        items = self._request("GET", "/disbursements", params={"external_id": out_transfer_no})
        if not items:
            return PayTransferResp.failure_of("NOT_FOUND", "转账单不存在", out_transfer_no, items)
        return self._transfer_resp(items[0])

    # ============ 虚拟账号 ==========

    def do_simulate_payment(self, payment_method_id: str, amount: int) -> SimulatePayResp:
        data = self._request(
            "POST",
            f"/v2/payment_methods/{payment_method_id}/payments/simulate",
            json_body={"amount": major_units_number(amount)},
        )
        return SimulatePayResp(
            status=data.get("status"), message=data.get("message"), raw_data=data
        )

    def do_parse_virtual_account_notification(self, raw_data: str) -> PayOrderResp:
        return self._payment_request_resp(self._json_object(raw_data), raw_data=raw_data)
