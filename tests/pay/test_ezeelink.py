"""Ezeelink 渠道测试"""

import json

import httpx
import pytest

from payclient.core.constants import ChannelCode, PayOrderDisplayMode, PayOrderStatus
from payclient.core.exceptions import InvalidNotifyException, UnsupportedOperationException
from payclient.providers.ezeelink import EzeelinkPayClient, sign

CONFIG = {
    "base_url": "https://ezeelink.example",
    "api_key": "ez-key",
    "api_secret": "ez-secret",
    "partner_id": "P1",
    "sub_partner_id": "SP1",
    "notify_path": "/callbacks/ezeelink",
}

ORDER = {
    "out_trade_no": "T1001",
    "amount": 1500000,
    "currency": "IDR",
    "subject": "pro 订阅",
}


@pytest.fixture
def make_client(settings, mock_http):
    def build(handler):
        transport, http_client = mock_http(handler)
        client = EzeelinkPayClient(
            ChannelCode.ezeelink_qr, CONFIG, http_client=http_client, settings=settings
        )
        client.init()
        return client, transport

    return build


class TestPlaceOrder:
    def test_qr_order(self, make_client):
        client, transport = make_client(
            lambda request: httpx.Response(
                200,
                json={
                    "result": {
                        "transaction_code": "EZ-1",
                        "qr_url": "https://qr.ezeelink.example/EZ-1.png",
                    }
                },
            )
        )
        resp = client.place_order(ORDER)

        assert resp.status == PayOrderStatus.waiting
        assert resp.display_mode == PayOrderDisplayMode.qr_code_url
        assert resp.display_content == "https://qr.ezeelink.example/EZ-1.png"
        assert resp.channel_order_no == "EZ-1"

        request = transport.requests[0]
        body = transport.last_json
        # 1500000（分）-> "15000"
        assert body["amount"] == "15000"
        assert body["expiry_time"] == 15
        assert body["transaction_id"] == "T1001"
        assert request.headers["x-api-key"] == "ez-key"

    def test_fractional_amount_keeps_two_decimals(self, make_client):
        client, transport = make_client(lambda request: httpx.Response(200, json={"result": {}}))
        client.place_order({**ORDER, "amount": 10050})
        assert transport.last_json["amount"] == "100.50"

    def test_request_signature(self, make_client):
        client, transport = make_client(lambda request: httpx.Response(200, json={"result": {}}))
        client.place_order({**ORDER, "expire_minutes": 5})

        request = transport.requests[0]
        expected = sign(
            "ez-secret",
            "POST",
            "/qris/v1/generate",
            request.headers["x-timestamp"],
            request.content.decode("utf-8"),
        )
        assert request.headers["x-signature"] == expected
        assert transport.last_json["expiry_time"] == 5

    def test_error_body_becomes_waiting(self, make_client):
        client, _ = make_client(
            lambda request: httpx.Response(
                400, json={"error_code": "INVALID_AMOUNT", "error_message": "amount too small"}
            )
        )
        resp = client.place_order(ORDER)

        assert resp.status == PayOrderStatus.waiting
        assert resp.channel_error_code == "INVALID_AMOUNT"
        assert resp.channel_error_msg == "amount too small"
        assert resp.out_trade_no == "T1001"


class TestGetOrder:
    @pytest.mark.parametrize(
        "status, expected",
        [
            ("2", PayOrderStatus.success),
            ("7", PayOrderStatus.waiting),
            ("9", PayOrderStatus.closed),
        ],
    )
    def test_status_mapping(self, make_client, status, expected):
        client, transport = make_client(
            lambda request: httpx.Response(
                200,
                json={
                    "result": {
                        "transaction_id": "T1001",
                        "transaction_code": "EZ-1",
                        "status": status,
                    }
                },
            )
        )
        resp = client.get_order("T1001")

        assert resp.status == expected
        assert resp.out_trade_no == "T1001"
        assert transport.requests[0].url.path == "/qris/v1/inquiry"


class TestNotification:
    BODY = json.dumps(
        {
            "transaction_id": "T1001",
            "transaction_code": "EZ-1",
            "status": "2",
            "paid_date": "2024-08-08T10:00:00+07:00",
        }
    )

    def _headers(self, body, timestamp="1723086000"):
        return {
            "X-Timestamp": timestamp,
            "X-Signature": sign("ez-secret", "POST", "/callbacks/ezeelink", timestamp, body),
        }

    def test_valid_notification(self, make_client):
        client, _ = make_client(lambda request: httpx.Response(200))
        headers = self._headers(self.BODY)

        first = client.parse_order_notification(headers, self.BODY)
        second = client.parse_order_notification(headers, self.BODY.encode("utf-8"))

        assert first.status == PayOrderStatus.success
        assert first.channel_order_no == "EZ-1"
        assert first.out_trade_no == "T1001"
        assert first.success_time is not None
        assert first == second

    def test_bad_signature_rejected(self, make_client):
        client, _ = make_client(lambda request: httpx.Response(200))
        headers = {**self._headers(self.BODY), "X-Signature": "0" * 64}
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification(headers, self.BODY)

    def test_missing_signature_rejected(self, make_client):
        client, _ = make_client(lambda request: httpx.Response(200))
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification({}, self.BODY)

    def test_unknown_status_rejected(self, make_client):
        client, _ = make_client(lambda request: httpx.Response(200))
        body = json.dumps({"transaction_id": "T1001", "status": "5"})
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification(self._headers(body), body)

    @pytest.mark.parametrize("body", ["[]", "\"x\"", json.dumps({"result": []})])
    def test_non_object_body_rejected(self, make_client, body):
        client, _ = make_client(lambda request: httpx.Response(200))
        with pytest.raises(InvalidNotifyException):
            client.parse_order_notification(self._headers(body), body)


class TestUnsupported:
    def test_refund_transfer_simulate(self, make_client):
        client, _ = make_client(lambda request: httpx.Response(200))
        with pytest.raises(UnsupportedOperationException):
            client.place_refund(
                {"out_trade_no": "T1001", "out_refund_no": "R1", "refund_amount": 100}
            )
        with pytest.raises(UnsupportedOperationException):
            client.get_refund("T1001", "R1")
        with pytest.raises(UnsupportedOperationException):
            client.simulate_payment("pm-1", 100)


class TestRefreshConfig:
    def test_refresh_swaps_invoker_then_closes_old(self, settings):
        client = EzeelinkPayClient(ChannelCode.ezeelink_qr, CONFIG, settings=settings)
        client.init()
        old = client._invoker

        client.refresh({**CONFIG, "api_secret": "ez-secret-2"})

        assert client._invoker is not old
        assert old._client.is_closed
        assert not client._invoker._client.is_closed
        client.close()
