"""
支付客户端基类

- PayClient：能力接口，所有渠道适配器对外暴露的统一操作
- AbstractPayClient：模板实现，负责一次性初始化、能力检查、参数校验与异常归一化，
  具体渠道只需实现 do_xxx 钩子（构造渠道请求 + 映射渠道响应）
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Mapping, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from payclient.core.constants import (
    ChannelCode,
    PayCapability,
    PayOrderStatus,
    PayRefundStatus,
    PayTransferStatus,
    PayTransferType,
)
from payclient.core.exceptions import (
    ChannelResponseException,
    ConfigException,
    InvalidNotifyException,
    NotInitializedException,
    PayClientException,
    UnsupportedOperationException,
    ValidationException,
)
from payclient.core.http import HttpInvoker
from payclient.core.settings import Settings, get_settings
from payclient.schemas import (
    PayOrderResp,
    PayOrderUnifiedReq,
    PayRefundResp,
    PayRefundUnifiedReq,
    PayTransferResp,
    PayTransferUnifiedReq,
    SimulatePayResp,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class PayClientConfig(BaseModel):
    """渠道配置基类（加载后不可变）"""

    model_config = ConfigDict(frozen=True, extra="ignore")


ConfigT = TypeVar("ConfigT", bound=PayClientConfig)


class PayClient(ABC):
    """支付客户端能力接口"""

    @property
    @abstractmethod
    def channel_code(self) -> ChannelCode:
        """渠道编码"""

    @property
    @abstractmethod
    def config(self) -> PayClientConfig:
        """渠道配置"""

    @property
    @abstractmethod
    def capabilities(self) -> frozenset[PayCapability]:
        """当前渠道支持的能力"""

    def supports(self, capability: PayCapability) -> bool:
        """能力查询：不支持的能力调用时会抛出 UnsupportedOperationException"""
        return capability in self.capabilities

    # ============ 支付相关 ==========

    @abstractmethod
    def place_order(self, req: PayOrderUnifiedReq) -> PayOrderResp:
        """
        调用支付渠道，统一下单

        渠道侧业务失败不抛异常，以 status=waiting/failed + channel_error_code/msg 返回
        """

    @abstractmethod
    def parse_order_notification(
        self, params: Mapping[str, str], body: str | bytes
    ) -> PayOrderResp:
        """
        解析支付回调（纯函数，同样的输入总是得到同样的结果）

        参数：
            params: 回调请求的 form/query 参数
            body: 回调请求的原始 body
        """

    @abstractmethod
    def get_order(self, out_trade_no: str) -> PayOrderResp:
        """查询支付订单"""

    # ============ 退款相关 ==========

    @abstractmethod
    def place_refund(self, req: PayRefundUnifiedReq) -> PayRefundResp:
        """调用支付渠道，发起退款"""

    @abstractmethod
    def parse_refund_notification(
        self, params: Mapping[str, str], body: str | bytes
    ) -> PayRefundResp:
        """解析退款回调"""

    @abstractmethod
    def get_refund(self, out_trade_no: str, out_refund_no: str) -> PayRefundResp:
        """查询退款"""

    # ============ 转账相关 ==========

    @abstractmethod
    def place_transfer(self, req: PayTransferUnifiedReq) -> PayTransferResp:
        """调用渠道，发起转账"""

    @abstractmethod
    def get_transfer(
        self, out_transfer_no: str, type: PayTransferType
    ) -> PayTransferResp:
        """查询转账"""

    # ============ 可选能力 ==========

    @abstractmethod
    def simulate_payment(self, payment_method_id: str, amount: int) -> SimulatePayResp:
        """模拟支付（虚拟账号测试场景）"""

    @abstractmethod
    def parse_virtual_account_notification(self, raw_data: str | bytes) -> PayOrderResp:
        """解析虚拟账号下单结果/通知"""


class AbstractPayClient(PayClient, Generic[ConfigT]):
    """
    支付客户端模板实现

    生命周期：UNINITIALIZED -> INITIALIZED（init() 只会真正执行一次 do_init）
    初始化完成后配置与渠道客户端只读，所有操作可并发调用
    """

    config_class: type[PayClientConfig] = PayClientConfig
    capabilities: frozenset[PayCapability] = frozenset({PayCapability.order})
    transfer_types: frozenset[PayTransferType] = frozenset()

    # 渠道错误响应 body 中的字段名
    error_code_field = "error_code"
    error_message_field = "message"

    def __init__(
        self,
        channel_code: ChannelCode | str,
        config: ConfigT | Mapping[str, Any],
        *,
        http_client: httpx.Client | None = None,
        settings: Settings | None = None,
    ):
        self._channel_code = ChannelCode(channel_code)
        self._config: ConfigT = self._validate_config(config)
        self._http_client = http_client
        self._settings = settings or get_settings()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._log = logger.bind(channel_code=self._channel_code.value)

    @property
    def channel_code(self) -> ChannelCode:
        return self._channel_code

    @property
    def config(self) -> ConfigT:
        return self._config

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _validate_config(self, config: ConfigT | Mapping[str, Any]) -> ConfigT:
        if isinstance(config, self.config_class):
            return config
        if isinstance(config, BaseModel):
            config = config.model_dump()
        try:
            return self.config_class.model_validate(config)
        except ValidationError as exc:
            raise ConfigException(
                message=f"渠道({self._channel_code.value}) 配置不正确",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    # ============ 生命周期 ==========

    def init(self) -> None:
        """初始化渠道客户端（并发首次调用只会构造一次）"""
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            self.do_init()
            self._initialized = True
        self._log.info("支付客户端初始化完成")

    def refresh(self, config: ConfigT | Mapping[str, Any]) -> bool:
        """
        配置变更时刷新客户端

        配置未变化时不做任何事并返回 False；已初始化的客户端按新配置重新 do_init，
        未初始化的客户端只替换配置，仍在首次 init() 时构造
        """
        new_config = self._validate_config(config)
        with self._init_lock:
            if new_config == self._config:
                return False
            self._config = new_config
            if self._initialized:
                self.do_init()
        self._log.info("支付客户端配置已刷新")
        return True

    def close(self) -> None:
        """释放渠道客户端资源"""

    @abstractmethod
    def do_init(self) -> None:
        """根据配置构造渠道 SDK/HTTP 客户端"""

    def _create_invoker(self) -> HttpInvoker:
        return HttpInvoker(
            self._http_client,
            timeout_sec=self._settings.http_timeout_seconds,
            max_attempts=self._settings.http_max_attempts,
            retry_wait_seconds=self._settings.http_retry_wait_seconds,
            name=self._channel_code.value,
        )

    @staticmethod
    def _new_idempotency_key() -> str:
        return str(uuid.uuid4())

    # ============ 支付相关 ==========

    def place_order(self, req: PayOrderUnifiedReq | Mapping[str, Any]) -> PayOrderResp:
        self._check_ready(PayCapability.order, "place_order")
        req = self._validate_request(PayOrderUnifiedReq, req)
        self.validate_order_request(req)
        resp = self._invoke(
            "place_order",
            req.out_trade_no,
            lambda: self.do_place_order(req),
            lambda exc: self._order_error_resp(req.out_trade_no, exc),
        )
        return self._with_key(resp, "out_trade_no", req.out_trade_no)

    def parse_order_notification(
        self, params: Mapping[str, str], body: str | bytes
    ) -> PayOrderResp:
        self._check_ready(PayCapability.order, "parse_order_notification")
        text = self._decode_body(body)
        return self._invoke_notify(
            "parse_order_notification",
            lambda: self.do_parse_order_notification(dict(params or {}), text),
        )

    def get_order(self, out_trade_no: str) -> PayOrderResp:
        self._check_ready(PayCapability.order, "get_order")
        self._require_key("out_trade_no", out_trade_no)
        resp = self._invoke(
            "get_order",
            out_trade_no,
            lambda: self.do_get_order(out_trade_no),
            lambda exc: self._order_error_resp(out_trade_no, exc),
        )
        return self._with_key(resp, "out_trade_no", out_trade_no)

    # ============ 退款相关 ==========

    def place_refund(self, req: PayRefundUnifiedReq | Mapping[str, Any]) -> PayRefundResp:
        self._check_ready(PayCapability.refund, "place_refund")
        req = self._validate_request(PayRefundUnifiedReq, req)
        resp = self._invoke(
            "place_refund",
            req.out_refund_no,
            lambda: self.do_place_refund(req),
            lambda exc: PayRefundResp.failure_of(
                *self._error_of(exc), req.out_refund_no, exc.response.text
            ),
        )
        return self._with_key(resp, "out_refund_no", req.out_refund_no)

    def parse_refund_notification(
        self, params: Mapping[str, str], body: str | bytes
    ) -> PayRefundResp:
        self._check_ready(PayCapability.refund, "parse_refund_notification")
        text = self._decode_body(body)
        return self._invoke_notify(
            "parse_refund_notification",
            lambda: self.do_parse_refund_notification(dict(params or {}), text),
        )

    def get_refund(self, out_trade_no: str, out_refund_no: str) -> PayRefundResp:
        self._check_ready(PayCapability.refund, "get_refund")
        self._require_key("out_trade_no", out_trade_no)
        self._require_key("out_refund_no", out_refund_no)
        resp = self._invoke(
            "get_refund",
            out_refund_no,
            lambda: self.do_get_refund(out_trade_no, out_refund_no),
            lambda exc: PayRefundResp(
                status=PayRefundStatus.waiting,
                out_refund_no=out_refund_no,
                channel_error_code=self._error_of(exc)[0],
                channel_error_msg=self._error_of(exc)[1],
                raw_data=exc.response.text,
            ),
        )
        return self._with_key(resp, "out_refund_no", out_refund_no)

    # ============ 转账相关 ==========

    def place_transfer(
        self, req: PayTransferUnifiedReq | Mapping[str, Any]
    ) -> PayTransferResp:
        self._check_ready(PayCapability.transfer, "place_transfer")
        req = self._validate_request(PayTransferUnifiedReq, req)
        self._check_transfer_type(req.type)
        resp = self._invoke(
            "place_transfer",
            req.out_transfer_no,
            lambda: self.do_place_transfer(req),
            lambda exc: PayTransferResp.failure_of(
                *self._error_of(exc), req.out_transfer_no, exc.response.text
            ),
        )
        return self._with_key(resp, "out_transfer_no", req.out_transfer_no)

    def get_transfer(
        self, out_transfer_no: str, type: PayTransferType
    ) -> PayTransferResp:
        self._check_ready(PayCapability.transfer, "get_transfer")
        self._require_key("out_transfer_no", out_transfer_no)
        self._check_transfer_type(PayTransferType(type))
        resp = self._invoke(
            "get_transfer",
            out_transfer_no,
            lambda: self.do_get_transfer(out_transfer_no, PayTransferType(type)),
            lambda exc: PayTransferResp(
                status=PayTransferStatus.waiting,
                out_transfer_no=out_transfer_no,
                channel_error_code=self._error_of(exc)[0],
                channel_error_msg=self._error_of(exc)[1],
                raw_data=exc.response.text,
            ),
        )
        return self._with_key(resp, "out_transfer_no", out_transfer_no)

    # ============ 可选能力 ==========

    def simulate_payment(self, payment_method_id: str, amount: int) -> SimulatePayResp:
        self._check_ready(PayCapability.simulate_payment, "simulate_payment")
        self._require_key("payment_method_id", payment_method_id)
        if not isinstance(amount, int) or amount <= 0:
            raise ValidationException(message="模拟支付金额必须大于零", details={"amount": amount})
        return self._invoke(
            "simulate_payment",
            payment_method_id,
            lambda: self.do_simulate_payment(payment_method_id, amount),
            lambda exc: SimulatePayResp(
                status="failed",
                message=self._error_of(exc)[1],
                raw_data=exc.response.text,
            ),
        )

    def parse_virtual_account_notification(self, raw_data: str | bytes) -> PayOrderResp:
        self._check_ready(
            PayCapability.virtual_account_notify, "parse_virtual_account_notification"
        )
        text = self._decode_body(raw_data)
        return self._invoke_notify(
            "parse_virtual_account_notification",
            lambda: self.do_parse_virtual_account_notification(text),
        )

    # ============ 渠道实现钩子 ==========

    def validate_order_request(self, req: PayOrderUnifiedReq) -> None:
        """渠道级下单参数校验（如币种限制），不合法时抛出 ValidationException"""

    @abstractmethod
    def do_place_order(self, req: PayOrderUnifiedReq) -> PayOrderResp:
        ...

    @abstractmethod
    def do_parse_order_notification(self, params: dict[str, str], body: str) -> PayOrderResp:
        ...

    @abstractmethod
    def do_get_order(self, out_trade_no: str) -> PayOrderResp:
        ...

    def do_place_refund(self, req: PayRefundUnifiedReq) -> PayRefundResp:
        raise self._unsupported("place_refund")

    def do_parse_refund_notification(self, params: dict[str, str], body: str) -> PayRefundResp:
        raise self._unsupported("parse_refund_notification")

    def do_get_refund(self, out_trade_no: str, out_refund_no: str) -> PayRefundResp:
        raise self._unsupported("get_refund")

    def do_place_transfer(self, req: PayTransferUnifiedReq) -> PayTransferResp:
        raise self._unsupported("place_transfer")

    def do_get_transfer(self, out_transfer_no: str, type: PayTransferType) -> PayTransferResp:
        raise self._unsupported("get_transfer")

    def do_simulate_payment(self, payment_method_id: str, amount: int) -> SimulatePayResp:
        raise self._unsupported("simulate_payment")

    def do_parse_virtual_account_notification(self, raw_data: str) -> PayOrderResp:
        raise self._unsupported("parse_virtual_account_notification")

    def parse_error_body(self, body: str) -> tuple[str | None, str | None]:
        """从渠道错误响应 body 中提取 (错误码, 错误信息)"""
        try:
            data = json.loads(body) if body else {}
        except ValueError:
            return None, body or None
        if not isinstance(data, dict):
            return None, body
        return data.get(self.error_code_field), data.get(self.error_message_field)

    # ============ 内部方法 ==========

    def _check_ready(self, capability: PayCapability, operation: str) -> None:
        if not self._initialized:
            raise NotInitializedException(
                message=f"支付客户端({self._channel_code.value}) 未初始化，无法执行 {operation}",
            )
        if not self.supports(capability):
            raise self._unsupported(operation)

    def _check_transfer_type(self, type: PayTransferType) -> None:
        if type not in self.transfer_types:
            raise UnsupportedOperationException(
                message=f"渠道({self._channel_code.value}) 不支持转账类型 {type.value}",
            )

    def _unsupported(self, operation: str) -> UnsupportedOperationException:
        return UnsupportedOperationException(
            message=f"渠道({self._channel_code.value}) 不支持 {operation}",
            details={"channel_code": self._channel_code.value, "operation": operation},
        )

    @staticmethod
    def _validate_request(model: type[M], req: M | Mapping[str, Any]) -> M:
        if isinstance(req, model):
            return req
        try:
            if isinstance(req, BaseModel):
                req = req.model_dump()
            return model.model_validate(req)
        except ValidationError as exc:
            raise ValidationException(
                message=f"{model.__name__} 参数不正确",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    @staticmethod
    def _require_key(name: str, value: str) -> None:
        if not value:
            raise ValidationException(message=f"{name} 不能为空")

    @staticmethod
    def _decode_body(body: str | bytes | None) -> str:
        if body is None:
            return ""
        if isinstance(body, bytes):
            try:
                return body.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise InvalidNotifyException(message="回调 body 不是合法的 UTF-8") from exc
        return body

    @staticmethod
    def _json_object(text: str, field: str | None = None) -> dict[str, Any]:
        """
        解析回调 JSON，要求为对象

        field 不为空时返回该字段的值，同样要求为对象
        """
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise InvalidNotifyException(message="回调 body 不是合法的 JSON") from exc
        if field is not None and isinstance(data, dict):
            data = data.get(field)
        if not isinstance(data, dict):
            raise InvalidNotifyException(message=f"回调 {field or 'body'} 不是 JSON 对象")
        return data

    @staticmethod
    def _with_key(resp: T, field: str, value: str) -> T:
        if getattr(resp, field) != value:
            return resp.model_copy(update={field: value})
        return resp

    def _error_of(self, exc: httpx.HTTPStatusError) -> tuple[str | None, str | None]:
        code, msg = self.parse_error_body(exc.response.text)
        return code or str(exc.response.status_code), msg

    def _order_error_resp(self, out_trade_no: str, exc: httpx.HTTPStatusError) -> PayOrderResp:
        code, msg = self._error_of(exc)
        return PayOrderResp(
            status=PayOrderStatus.waiting,
            out_trade_no=out_trade_no,
            channel_error_code=code,
            channel_error_msg=msg,
            raw_data=exc.response.text,
        )

    def _invoke(
        self,
        operation: str,
        key: str,
        call: Callable[[], T],
        on_http_error: Callable[[httpx.HTTPStatusError], T],
    ) -> T:
        log = self._log.bind(operation=operation, key=key)
        start = time.perf_counter()
        try:
            result = call()
        except httpx.HTTPStatusError as exc:
            log.error(
                "渠道返回错误响应",
                status_code=exc.response.status_code,
                body=exc.response.text,
            )
            result = on_http_error(exc)
        except PayClientException:
            raise
        except Exception as exc:
            log.error("渠道调用异常", error=str(exc), exc_info=True)
            raise ChannelResponseException(
                message=f"渠道({self._channel_code.value}) {operation} 处理失败：{exc}",
                details={"operation": operation, "key": key},
            ) from exc

        log.info(
            "渠道调用完成",
            status=getattr(result, "status", None),
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        return result

    def _invoke_notify(self, operation: str, call: Callable[[], T]) -> T:
        log = self._log.bind(operation=operation)
        try:
            result = call()
        except PayClientException:
            raise
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            log.warning("回调解析失败", error=str(exc))
            raise InvalidNotifyException(
                message=f"渠道({self._channel_code.value}) 回调解析失败：{exc}",
            ) from exc
        log.info("回调解析完成", status=getattr(result, "status", None))
        return result
