"""
支付宝 Adapter

- 扫码支付（alipay.trade.precreate）：https://opendocs.alipay.com/open/02ekfg
- 电脑网站支付（alipay.trade.page.pay）：https://opendocs.alipay.com/open-v3/2423fad5_alipay.trade.page.pay
- 异步通知验签：https://opendocs.alipay.com/common/02mse7
"""

import base64
import json
import re
from datetime import datetime
from typing import Any
from urllib.parse import parse_qsl

import httpx
from alipay.aop.api.AlipayClientConfig import AlipayClientConfig
from alipay.aop.api.DefaultAlipayClient import DefaultAlipayClient
from alipay.aop.api.exception.Exception import RequestException, ResponseException
from alipay.aop.api.request.AlipayFundTransCommonQueryRequest import (
    AlipayFundTransCommonQueryRequest,
)
from alipay.aop.api.request.AlipayFundTransUniTransferRequest import (
    AlipayFundTransUniTransferRequest,
)
from alipay.aop.api.request.AlipayTradeFastpayRefundQueryRequest import (
    AlipayTradeFastpayRefundQueryRequest,
)
from alipay.aop.api.request.AlipayTradePagePayRequest import AlipayTradePagePayRequest
from alipay.aop.api.request.AlipayTradePrecreateRequest import AlipayTradePrecreateRequest
from alipay.aop.api.request.AlipayTradeQueryRequest import AlipayTradeQueryRequest
from alipay.aop.api.request.AlipayTradeRefundRequest import AlipayTradeRefundRequest
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from pydantic import Field

from payclient.core.constants import (
    ChannelCode,
    PayCapability,
    PayOrderDisplayMode,
    PayOrderStatus,
    PayTransferStatus,
    PayTransferType,
)
from payclient.core.exceptions import (
    ConfigException,
    InvalidNotifyException,
    InvokerException,
    ValidationException,
)
from payclient.core.money import format_major_units
from payclient.schemas import (
    PayOrderResp,
    PayOrderUnifiedReq,
    PayRefundResp,
    PayRefundUnifiedReq,
    PayTransferResp,
    PayTransferUnifiedReq,
)
from .base import AbstractPayClient, PayClientConfig

SUCCESS_CODE = "10000"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
TIME_FORMAT_MS = "%Y-%m-%d %H:%M:%S.%f"  # 退款通知 gmt_refund 带毫秒

# SDK 非 200 响应的异常信息：invalid http status 502,detail body:...
HTTP_STATUS_PATTERN = re.compile(r"invalid http status (\d{3})")

# trade_status -> 订单状态
TRADE_STATUS = {
    "WAIT_BUYER_PAY": PayOrderStatus.waiting,
    "TRADE_SUCCESS": PayOrderStatus.success,
    "TRADE_FINISHED": PayOrderStatus.success,
    "TRADE_CLOSED": PayOrderStatus.closed,
}

# 转账单状态 -> 转账状态
TRANSFER_STATUS = {
    "SUCCESS": PayTransferStatus.success,
    "WAIT_PAY": PayTransferStatus.in_progress,
    "DEALING": PayTransferStatus.in_progress,
    "FAIL": PayTransferStatus.failed,
    "CLOSED": PayTransferStatus.closed,
    "REFUND": PayTransferStatus.closed,
}

TRANSFER_PRODUCT_CODE = "TRANS_ACCOUNT_NO_PWD"
TRANSFER_BIZ_SCENE = "DIRECT_TRANSFER"


class AlipayPayClientConfig(PayClientConfig):
    """支付宝渠道配置"""

    app_id: str = Field(..., min_length=1)
    private_key: str = Field(..., min_length=1)  # 应用私钥（裸 Base64 或 PEM）
    alipay_public_key: str = Field(..., min_length=1)  # 支付宝公钥（裸 Base64 或 PEM）
    sandbox: bool = False
    sign_type: str = "RSA2"
    currency: str = Field(default="CNY", pattern=r"^[A-Z]{3}$")
    timeout_seconds: float = Field(default=15.0, gt=0)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, TIME_FORMAT_MS if "." in value else TIME_FORMAT)


def _timeout_express(expire_minutes: int) -> str:
    # 统一按分钟传，避免换算成 h/d 时截断
    return f"{expire_minutes}m"


def load_public_key(key_str: str):
    """加载 RSA 公钥，支持 PEM 格式和裸 Base64"""
    key_str = key_str.strip()
    if not key_str.startswith("-----"):
        key_str = "-----BEGIN PUBLIC KEY-----\n" + key_str + "\n-----END PUBLIC KEY-----"
    try:
        return serialization.load_pem_public_key(key_str.encode("utf-8"))
    except ValueError as e:
        raise ConfigException(f"无法加载支付宝公钥: {e}")


def load_private_key(key_str: str) -> rsa.RSAPrivateKey:
    """加载应用私钥，支持 PEM 格式（PKCS#1 / PKCS#8）和裸 Base64"""
    key_str = key_str.strip()
    try:
        if key_str.startswith("-----"):
            key = serialization.load_pem_private_key(key_str.encode("utf-8"), password=None)
        else:
            key = serialization.load_der_private_key(base64.b64decode(key_str), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigException(f"无法加载应用私钥: {e}")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigException("应用私钥不是 RSA 私钥")
    return key


def to_pkcs1_pem(key: rsa.RSAPrivateKey) -> str:
    """SDK 按 PKCS#1（RSA PRIVATE KEY）加载私钥"""
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ).decode("utf-8")


def get_sign_content(params: dict[str, str]) -> str:
    """
    异步通知待验签内容

    1. 过滤空值和 sign、sign_type 参数
    2. 按参数名 ASCII 排序
    3. 拼接 URL 键值对（值不 URL 编码）
    """
    filtered = {
        k: v
        for k, v in params.items()
        if k not in ("sign", "sign_type") and v is not None and v != ""
    }
    return "&".join(f"{k}={filtered[k]}" for k in sorted(filtered))


class AlipayPayClient(AbstractPayClient[AlipayPayClientConfig]):
    """
    支付宝支付客户端

    alipay_qr：扫码支付，返回二维码内容
    alipay_pc：电脑网站支付，返回跳转链接
    """

    config_class = AlipayPayClientConfig
    capabilities = frozenset(
        {PayCapability.order, PayCapability.refund, PayCapability.transfer}
    )
    transfer_types = frozenset({PayTransferType.alipay_balance})

    def __init__(self, channel_code, config, **kwargs):
        super().__init__(channel_code, config, **kwargs)
        if self.channel_code not in (ChannelCode.alipay_qr, ChannelCode.alipay_pc):
            raise ConfigException(f"渠道({self.channel_code.value}) 不是支付宝渠道")
        self.client = None
        self.public_key = None
        self.server_url = None

    def do_init(self) -> None:
        # 密钥在初始化时校验
        private_key = load_private_key(self.config.private_key)
        self.public_key = load_public_key(self.config.alipay_public_key)

        config = AlipayClientConfig(sandbox_debug=self.config.sandbox)
        config.app_id = self.config.app_id
        config.app_private_key = to_pkcs1_pem(private_key)
        config.alipay_public_key = self.config.alipay_public_key
        config.sign_type = self.config.sign_type
        config.timeout = self.config.timeout_seconds

        self.client = DefaultAlipayClient(alipay_client_config=config)
        self.server_url = config.server_url

    def _execute(self, request) -> dict[str, Any]:
        """执行 SDK 请求，返回 xxx_response 节点内容"""
        try:
            response = self.client.execute(request)
        except (RequestException, OSError) as exc:
            raise InvokerException(
                message=f"调用支付宝失败：{exc}",
                details={"channel_code": self.channel_code.value},
            ) from exc
        except ResponseException as exc:
            # 非 200 响应或响应验签失败，按渠道错误响应归一化
            raise self._status_error(str(exc)) from exc
        return json.loads(response)

    def _status_error(self, message: str) -> httpx.HTTPStatusError:
        match = HTTP_STATUS_PATTERN.search(message)
        request = httpx.Request("POST", self.server_url)
        response = httpx.Response(
            int(match.group(1)) if match else 502, text=message, request=request
        )
        return httpx.HTTPStatusError(message, request=request, response=response)

    @staticmethod
    def _is_success(data: dict[str, Any]) -> bool:
        return data.get("code") == SUCCESS_CODE

    @staticmethod
    def _business_error_of(data: dict[str, Any]) -> tuple[str | None, str | None]:
        return data.get("sub_code") or data.get("code"), data.get("sub_msg") or data.get("msg")

    # ============ 支付相关 ==========

    def validate_order_request(self, req: PayOrderUnifiedReq) -> None:
        if req.currency != self.config.currency:
            raise ValidationException(
                f"支付宝渠道只支持币种 {self.config.currency}",
                details={"currency": req.currency},
            )

    def do_place_order(self, req: PayOrderUnifiedReq) -> PayOrderResp:
        # 支付宝金额单位：元（需要从分转换）
        biz_content = {
            "out_trade_no": req.out_trade_no,
            "total_amount": format_major_units(req.amount),
            "subject": req.subject,
        }
        if req.body:
            biz_content["body"] = req.body
        if req.expire_minutes:
            biz_content["timeout_express"] = _timeout_express(req.expire_minutes)

        if self.channel_code == ChannelCode.alipay_pc:
            biz_content["product_code"] = "FAST_INSTANT_TRADE_PAY"
            request = AlipayTradePagePayRequest()
            request.biz_content = biz_content
            request.notify_url = req.notify_url
            request.return_url = req.return_url
            # GET 方式返回跳转链接，不发起网络请求
            url = self.client.page_execute(request, http_method="GET")
            return PayOrderResp.waiting_of(
                PayOrderDisplayMode.url, url, req.out_trade_no, url
            )

        request = AlipayTradePrecreateRequest()
        request.biz_content = biz_content
        request.notify_url = req.notify_url
        data = self._execute(request)

        if not self._is_success(data):
            return PayOrderResp.failure_of(*self._business_error_of(data), req.out_trade_no, data)
        return PayOrderResp.waiting_of(
            PayOrderDisplayMode.qr_code_url, data.get("qr_code"), req.out_trade_no, data
        )

    def _order_resp(self, data: dict[str, Any], raw_data: Any) -> PayOrderResp:
        status = TRADE_STATUS.get(data.get("trade_status"))
        if status is None:
            raise ValueError(f"trade_status({data.get('trade_status')}) 不正确")
        return PayOrderResp.of(
            status,
            data.get("trade_no"),
            data.get("buyer_id") or data.get("buyer_user_id"),
            _parse_time(data.get("gmt_payment") or data.get("send_pay_date")),
            data.get("out_trade_no"),
            raw_data,
        )

    def do_parse_order_notification(self, params: dict[str, str], body: str) -> PayOrderResp:
        data = self._verified_notify_params(params, body)
        return self._order_resp(data, raw_data=data)

    def do_get_order(self, out_trade_no: str) -> PayOrderResp:
        request = AlipayTradeQueryRequest()
        request.biz_content = {"out_trade_no": out_trade_no}
        data = self._execute(request)

        if not self._is_success(data):
            code, msg = self._business_error_of(data)
            if code == "ACQ.TRADE_NOT_EXIST":
                return PayOrderResp.closed_of(code, msg, out_trade_no, data)
            return PayOrderResp(
                status=PayOrderStatus.waiting,
                out_trade_no=out_trade_no,
                channel_error_code=code,
                channel_error_msg=msg,
                raw_data=data,
            )
        return self._order_resp(data, raw_data=data)

    def _verified_notify_params(self, params: dict[str, str], body: str) -> dict[str, str]:
        """
        验证并解析支付宝异步通知

        支付宝回调：application/x-www-form-urlencoded，需要验签（RSA2）
        params 为空时从 body 解析表单
        """
        data = dict(params) if params else dict(parse_qsl(body, keep_blank_values=True))
        sign = data.get("sign")
        if not sign:
            raise InvalidNotifyException("支付宝回调缺少 sign")
        try:
            self.public_key.verify(
                base64.b64decode(sign),
                get_sign_content(data).encode("utf-8"),
                padding.PKCS1v15(),
                hashes.SHA256(),
            )
        except (InvalidSignature, ValueError) as exc:
            raise InvalidNotifyException("支付宝回调验签失败") from exc
        if data.get("app_id") and data["app_id"] != self.config.app_id:
            raise InvalidNotifyException("支付宝回调 app_id 不匹配")
        return data

    # ============ 退款相关 ==========

    def do_place_refund(self, req: PayRefundUnifiedReq) -> PayRefundResp:
        # out_request_no 保证同一笔退款重复请求只退一次
        request = AlipayTradeRefundRequest()
        request.biz_content = {
            "out_trade_no": req.out_trade_no,
            "out_request_no": req.out_refund_no,
            "refund_amount": format_major_units(req.refund_amount),
            "refund_reason": req.reason,
        }
        data = self._execute(request)

        if not self._is_success(data):
            return PayRefundResp.failure_of(*self._business_error_of(data), req.out_refund_no, data)
        return PayRefundResp.success_of(
            data.get("trade_no"),
            _parse_time(data.get("gmt_refund_pay")),
            req.out_refund_no,
            data,
        )

    def do_parse_refund_notification(self, params: dict[str, str], body: str) -> PayRefundResp:
        data = self._verified_notify_params(params, body)
        if not data.get("out_biz_no") or not data.get("gmt_refund"):
            raise ValueError("不是支付宝退款通知")
        return PayRefundResp.success_of(
            data.get("trade_no"),
            _parse_time(data["gmt_refund"]),
            data["out_biz_no"],
            data,
        )

    def do_get_refund(self, out_trade_no: str, out_refund_no: str) -> PayRefundResp:
        request = AlipayTradeFastpayRefundQueryRequest()
        request.biz_content = {
            "out_trade_no": out_trade_no,
            "out_request_no": out_refund_no,
            "query_options": ["gmt_refund_pay"],
        }
        data = self._execute(request)

        if not self._is_success(data):
            return PayRefundResp.failure_of(*self._business_error_of(data), out_refund_no, data)
        if data.get("refund_status") == "REFUND_SUCCESS":
            return PayRefundResp.success_of(
                data.get("trade_no"),
                _parse_time(data.get("gmt_refund_pay")),
                out_refund_no,
                data,
            )
        return PayRefundResp.waiting_of(data.get("trade_no"), out_refund_no, data)

    # ============ 转账相关 ==========

    def do_place_transfer(self, req: PayTransferUnifiedReq) -> PayTransferResp:
        request = AlipayFundTransUniTransferRequest()
        request.biz_content = {
            "out_biz_no": req.out_transfer_no,
            "trans_amount": format_major_units(req.amount),
            "product_code": TRANSFER_PRODUCT_CODE,
            "biz_scene": TRANSFER_BIZ_SCENE,
            "order_title": req.subject,
            "payee_info": {
                "identity": req.alipay_logon_id,
                "identity_type": "ALIPAY_LOGON_ID",
                "name": req.user_name,
            },
        }
        data = self._execute(request)
        return self._transfer_resp(data, req.out_transfer_no)

    def _transfer_resp(self, data: dict[str, Any], out_transfer_no: str) -> PayTransferResp:
        if not self._is_success(data):
            return PayTransferResp.failure_of(*self._business_error_of(data), out_transfer_no, data)

        status = TRANSFER_STATUS.get(data.get("status"))
        if status is None:
            raise ValueError(f"转账状态({data.get('status')}) 不正确")
        if status == PayTransferStatus.failed:
            return PayTransferResp.failure_of(
                data.get("error_code"), data.get("fail_reason"), out_transfer_no, data
            )
        return PayTransferResp(
            status=status,
            channel_transfer_no=data.get("order_id"),
            out_transfer_no=out_transfer_no,
            success_time=_parse_time(data.get("trans_date") or data.get("pay_date")),
            raw_data=data,
        )

    def do_get_transfer(self, out_transfer_no: str, type: PayTransferType) -> PayTransferResp:
        request = AlipayFundTransCommonQueryRequest()
        request.biz_content = {
            "out_biz_no": out_transfer_no,
            "product_code": TRANSFER_PRODUCT_CODE,
            "biz_scene": TRANSFER_BIZ_SCENE,
        }
        data = self._execute(request)
        return self._transfer_resp(data, out_transfer_no)
