"""全局测试配置"""

import json
from typing import Callable

import httpx
import pytest

from payclient.core.settings import Settings


@pytest.fixture
def settings() -> Settings:
    """不读取 .env、重试不等待的配置"""
    return Settings(_env_file=None, http_max_attempts=3, http_retry_wait_seconds=0)


class RecordingTransport(httpx.MockTransport):
    """记录所有请求的 MockTransport"""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def mock_http():
    """
    构造注入 MockTransport 的 httpx.Client

    用法：transport, http_client = mock_http(handler)
    """
    clients: list[httpx.Client] = []

    def build(handler: Callable[[httpx.Request], httpx.Response]):
        transport = RecordingTransport(handler)
        http_client = httpx.Client(transport=transport)
        clients.append(http_client)
        return transport, http_client

    yield build
    for client in clients:
        client.close()
