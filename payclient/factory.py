"""
支付客户端工厂

- create_or_update_client：校验配置并创建客户端，配置变化时刷新
- get_client：首次获取时初始化（并发获取只初始化一次）
"""

import threading
from typing import Any, Mapping

import httpx
import structlog

from payclient.core.constants import ChannelCode
from payclient.core.exceptions import UnknownChannelException
from payclient.core.settings import Settings, get_settings
from payclient.providers.base import AbstractPayClient, PayClientConfig
from payclient.registry import ChannelRegistry, default_registry

logger = structlog.get_logger(__name__)


class PayClientFactory:
    def __init__(
        self,
        registry: ChannelRegistry | None = None,
        settings: Settings | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.registry = registry or default_registry()
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._clients: dict[ChannelCode, AbstractPayClient] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        registry: ChannelRegistry | None = None,
        http_client: httpx.Client | None = None,
    ) -> "PayClientFactory":
        """根据环境配置创建工厂，注册所有已配置凭证的渠道"""
        settings = settings or get_settings()
        factory = cls(registry, settings, http_client)
        for code, config in settings.channel_configs().items():
            factory.create_or_update_client(code, config)
        logger.info("支付渠道加载完成", channels=[c.value for c in factory.codes()])
        return factory

    def create_or_update_client(
        self, code: ChannelCode | str, config: PayClientConfig | Mapping[str, Any]
    ) -> AbstractPayClient:
        descriptor = self.registry.resolve(code)

        # 配置校验由客户端完成，不合法时抛出 ConfigException
        with self._lock:
            client = self._clients.get(descriptor.code)
            if client is None:
                client = descriptor.client_class(
                    descriptor.code,
                    config,
                    http_client=self._http_client,
                    settings=self.settings,
                )
                self._clients[descriptor.code] = client
                logger.info("支付客户端已创建", channel_code=descriptor.code.value)
                return client

        if client.refresh(config):
            logger.info("支付客户端配置已更新", channel_code=descriptor.code.value)
        return client

    def get_client(self, code: ChannelCode | str) -> AbstractPayClient:
        descriptor = self.registry.resolve(code)
        client = self._clients.get(descriptor.code)
        if client is None:
            raise UnknownChannelException(
                message=f"支付渠道({descriptor.code.value}) 未配置",
                details={"channel_code": descriptor.code.value},
            )
        # init() 内部加锁，并发首次调用只会初始化一次
        client.init()
        return client

    def codes(self) -> list[ChannelCode]:
        return list(self._clients)

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
