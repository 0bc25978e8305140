"""AbstractPayClient 模板行为测试（初始化、能力检查、参数校验、异常归一化）"""

import threading
import time

import httpx
import pytest

from payclient.core.constants import (
    ChannelCode,
    PayCapability,
    PayOrderDisplayMode,
    PayOrderStatus,
    PayRefundStatus,
    PayTransferType,
)
from payclient.core.exceptions import (
    ChannelResponseException,
    ConfigException,
    InvalidNotifyException,
    NotInitializedException,
    UnsupportedOperationException,
    ValidationException,
)
from payclient.providers.base import AbstractPayClient, PayClientConfig
from payclient.schemas import PayOrderResp, PayOrderUnifiedReq, PayRefundResp


class DummyConfig(PayClientConfig):
    api_key: str


class DummyPayClient(AbstractPayClient[DummyConfig]):
    """测试用渠道：下单结果由 behavior 决定"""

    config_class = DummyConfig
    capabilities = frozenset({PayCapability.order, PayCapability.refund})

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.init_count = 0
        self.calls = 0
        self.behavior = None

    def do_init(self) -> None:
        time.sleep(0.01)
        self.init_count += 1

    def do_place_order(self, req):
        self.calls += 1
        if self.behavior is not None:
            return self.behavior(req)
        # 故意返回不同的 out_trade_no
        return PayOrderResp.waiting_of(
            PayOrderDisplayMode.url, "https://pay.example/1", "other", {}
        )

    def do_parse_order_notification(self, params, body):
        if body == "bad":
            raise KeyError("status")
        if body.startswith("json:"):
            data = self._json_object(body[5:], "data")
            return PayOrderResp.success_of("ch-1", None, None, data["id"], body)
        if body == "shape":
            "not-a-dict".get("status")
        return PayOrderResp.success_of("ch-1", None, None, "T1", body)

    def do_get_order(self, out_trade_no):
        return PayOrderResp.waiting_of(None, None, out_trade_no, {})

    def do_place_refund(self, req):
        response = httpx.Response(
            400,
            json={"error_code": "REFUND_ERR", "message": "bad refund"},
            request=httpx.Request("POST", "https://api.example/refunds"),
        )
        raise httpx.HTTPStatusError("bad", request=response.request, response=response)


ORDER = {
    "out_trade_no": "T1",
    "amount": 10000,
    "currency": "IDR",
    "subject": "test",
}


@pytest.fixture
def client(settings):
    return DummyPayClient(ChannelCode.xendit_invoice, {"api_key": "k"}, settings=settings)


class TestLifecycle:
    def test_invalid_config_raises(self, settings):
        with pytest.raises(ConfigException):
            DummyPayClient(ChannelCode.xendit_invoice, {}, settings=settings)

    def test_operation_before_init_raises(self, client):
        with pytest.raises(NotInitializedException):
            client.place_order(ORDER)
        assert client.calls == 0

    def test_concurrent_init_runs_once(self, client):
        threads = [threading.Thread(target=client.init) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert client.init_count == 1
        assert client.initialized

    def test_refresh_with_new_config_reinitializes(self, client):
        client.init()
        client.refresh({"api_key": "k"})
        assert client.init_count == 1

        client.refresh({"api_key": "k2"})
        assert client.init_count == 2
        assert client.config.api_key == "k2"

    def test_refresh_before_init_only_replaces_config(self, client):
        assert client.refresh({"api_key": "k2"}) is True
        assert client.init_count == 0
        assert not client.initialized

        client.init()
        assert client.config.api_key == "k2"
        assert client.init_count == 1

    def test_refresh_with_invalid_config_raises(self, client):
        with pytest.raises(ConfigException):
            client.refresh({})
        assert client.config.api_key == "k"


class TestCapabilities:
    def test_supports(self, client):
        assert client.supports(PayCapability.order)
        assert not client.supports(PayCapability.transfer)

    def test_unsupported_operation_raises(self, client):
        client.init()
        with pytest.raises(UnsupportedOperationException):
            client.get_transfer("X1", PayTransferType.bank_card)
        with pytest.raises(UnsupportedOperationException):
            client.simulate_payment("pm-1", 100)


class TestPlaceOrder:
    def test_invalid_request_fails_before_channel_call(self, client):
        client.init()
        with pytest.raises(ValidationException):
            client.place_order({**ORDER, "amount": 0})
        with pytest.raises(ValidationException):
            client.place_order({**ORDER, "currency": "idr"})
        assert client.calls == 0

    def test_response_echoes_request_key(self, client):
        client.init()
        resp = client.place_order(PayOrderUnifiedReq(**ORDER))
        assert resp.out_trade_no == "T1"
        assert resp.status == PayOrderStatus.waiting

    def test_unexpected_error_is_wrapped(self, client):
        client.init()

        def boom(req):
            raise RuntimeError("unexpected")

        client.behavior = boom
        with pytest.raises(ChannelResponseException):
            client.place_order(ORDER)

    def test_library_exception_propagates(self, client):
        client.init()

        def reject(req):
            raise ValidationException("rejected")

        client.behavior = reject
        with pytest.raises(ValidationException, match="rejected"):
            client.place_order(ORDER)


class TestErrorNormalization:
    def test_refund_http_error_becomes_failed(self, client):
        client.init()
        resp = client.place_refund(
            {"out_trade_no": "T1", "out_refund_no": "R1", "refund_amount": 100}
        )
        assert isinstance(resp, PayRefundResp)
        assert resp.status == PayRefundStatus.failed
        assert resp.out_refund_no == "R1"
        assert resp.channel_error_code == "REFUND_ERR"
        assert resp.channel_error_msg == "bad refund"

    def test_refund_amount_over_pay_amount_rejected(self, client):
        client.init()
        with pytest.raises(ValidationException):
            client.place_refund(
                {
                    "out_trade_no": "T1",
                    "out_refund_no": "R1",
                    "pay_amount": 100,
                    "refund_amount": 101,
                }
            )


class TestNotification:
    def test_parse_error_becomes_invalid_notify(self, client):
        client.init()
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification({}, "bad")

    def test_attribute_error_becomes_invalid_notify(self, client):
        client.init()
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification({}, "shape")

    @pytest.mark.parametrize("body", ["[]", "\"x\"", "1", "{\"data\": []}", "not json"])
    def test_json_body_must_be_object(self, client, body):
        client.init()
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification({}, "json:" + body)

    def test_json_object_field(self, client):
        client.init()
        resp = client.parse_order_notification({}, "json:{\"data\": {\"id\": \"T1\"}}")
        assert resp.out_trade_no == "T1"

    def test_non_utf8_body_rejected(self, client):
        client.init()
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification({}, b"\xff\xfe")

    def test_same_input_same_output(self, client):
        client.init()
        first = client.parse_order_notification({}, b"payload")
        second = client.parse_order_notification({}, "payload")
        assert first == second
