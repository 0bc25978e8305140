"""
Ezeelink Adapter（QRIS 扫码支付）

请求签名：x-signature = HMAC-SHA256(api_secret, "METHOD:PATH:TIMESTAMP:BODY")，十六进制小写
"""

import hashlib
import hmac
import json
import time
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from pydantic import Field

from payclient.core.constants import PayCapability, PayOrderDisplayMode, PayOrderStatus
from payclient.core.exceptions import InvalidNotifyException, ValidationException
from payclient.core.money import major_units_text
from payclient.schemas import PayOrderResp, PayOrderUnifiedReq
from .base import AbstractPayClient, PayClientConfig

# Ezeelink 支付状态
PAYMENT_STATUS = {
    "2": PayOrderStatus.success,  # Success/Paid
    "7": PayOrderStatus.waiting,  # Waiting for payment
    "9": PayOrderStatus.closed,  # Payment Expired
}


class EzeelinkPayClientConfig(PayClientConfig):
    """Ezeelink 渠道配置"""

    base_url: str = Field(..., min_length=1)
    api_url: str = "/qris/v1/generate"
    inquiry_url: str = "/qris/v1/inquiry"
    notify_path: str = "/"  # Ezeelink 回调商户的路径，参与回调验签
    api_key: str = Field(..., min_length=1)
    api_secret: str = Field(..., min_length=1)
    partner_id: str = Field(..., min_length=1)
    sub_partner_id: str = ""
    store_ext_id: str = "MyShop"
    terminal_id: str = "Mobile"
    currency: str = Field(default="IDR", pattern=r"^[A-Z]{3}$")
    expire_minutes: int = Field(default=15, gt=0, le=24 * 60)


def sign(secret: str, method: str, path: str, timestamp: str, body: str) -> str:
    message = f"{method.upper()}:{path}:{timestamp}:{body}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class EzeelinkPayClient(AbstractPayClient[EzeelinkPayClientConfig]):
    """Ezeelink 扫码支付客户端（仅支持下单、查询、回调）"""

    config_class = EzeelinkPayClientConfig
    capabilities = frozenset({PayCapability.order})
    error_message_field = "error_message"

    def __init__(self, channel_code, config, **kwargs):
        super().__init__(channel_code, config, **kwargs)
        self._invoker = None

    def do_init(self) -> None:
        # 先切换再关闭，进行中的请求仍持有旧 invoker
        old, self._invoker = self._invoker, self._create_invoker()
        if old is not None:
            old.close()

    def close(self) -> None:
        if self._invoker is not None:
            self._invoker.close()

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        url = self.config.base_url.rstrip("/") + path
        timestamp = str(int(time.time()))
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "x-timestamp": timestamp,
            "x-signature": sign(
                self.config.api_secret, "POST", urlsplit(url).path, timestamp, body
            ),
        }
        return self._invoker.request_json(
            "POST", url, content=body.encode("utf-8"), headers=headers
        )

    def validate_order_request(self, req: PayOrderUnifiedReq) -> None:
        if req.currency != self.config.currency:
            raise ValidationException(
                f"Ezeelink 渠道只支持币种 {self.config.currency}",
                details={"currency": req.currency},
            )

    def do_place_order(self, req: PayOrderUnifiedReq) -> PayOrderResp:
        payload = {
            "expiry_time": req.expire_minutes or self.config.expire_minutes,
            "currency": req.currency,
            "store_ext_id": req.channel_extras.get("store_ext_id", self.config.store_ext_id),
            "terminal_id": req.channel_extras.get("terminal_id", self.config.terminal_id),
            "bill_description": req.subject,
            "transaction_id": req.out_trade_no,
            # Ezeelink 金额单位：主币单位字符串
            "amount": major_units_text(req.amount),
            "partner_id": self.config.partner_id,
            "sub_partner_id": self.config.sub_partner_id,
        }
        data = self._post(self.config.api_url, payload)
        result = data.get("result") or {}
        return PayOrderResp.waiting_of(
            PayOrderDisplayMode.qr_code_url,
            result.get("qr_url"),
            req.out_trade_no,
            data,
            channel_order_no=result.get("transaction_code"),
        )

    def _order_resp(self, result: dict[str, Any], out_trade_no: str | None, raw_data: Any) -> PayOrderResp:
        status = PAYMENT_STATUS.get(str(result.get("status")))
        if status is None:
            raise ValueError(f"Ezeelink 支付状态({result.get('status')}) 不正确")
        return PayOrderResp.of(
            status,
            result.get("transaction_code"),
            None,
            _parse_time(result.get("paid_date")) if status == PayOrderStatus.success else None,
            result.get("transaction_id") or out_trade_no,
            raw_data,
        )

    def do_parse_order_notification(self, params: dict[str, str], body: str) -> PayOrderResp:
        headers = {k.lower(): v for k, v in params.items()}
        timestamp = headers.get("x-timestamp")
        signature = headers.get("x-signature")
        if not timestamp or not signature:
            raise InvalidNotifyException("Ezeelink 回调缺少签名头")
        expected = sign(self.config.api_secret, "POST", self.config.notify_path, timestamp, body)
        if not hmac.compare_digest(expected, signature):
            raise InvalidNotifyException("Ezeelink 回调验签失败")

        data = self._json_object(body)
        result = self._json_object(body, "result") if "result" in data else data
        return self._order_resp(result, None, body)

    def do_get_order(self, out_trade_no: str) -> PayOrderResp:
        payload = {
            "transaction_id": out_trade_no,
            "partner_id": self.config.partner_id,
            "sub_partner_id": self.config.sub_partner_id,
        }
        data = self._post(self.config.inquiry_url, payload)
        result = data.get("result")
        if not result:
            return PayOrderResp.closed_of(
                data.get("error_code") or "NOT_FOUND",
                data.get("error_message"),
                out_trade_no,
                data,
            )
        return self._order_resp(result, out_trade_no, data)
