"""
渠道 HTTP 调用（httpx + tenacity 重试）

- 仅对传输层故障（超时、连接失败）重试，重试耗尽后抛出 InvokerException
- 非 2xx 响应抛出 httpx.HTTPStatusError，由 AbstractPayClient 统一转换为失败响应
- 幂等 key 每次逻辑调用只生成一次，重试时复用同一个
"""

from typing import Any, Mapping

import httpx
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from payclient.core.exceptions import InvokerException

logger = structlog.get_logger(__name__)


def client(timeout_sec: float = 30.0) -> httpx.Client:
    return httpx.Client(timeout=timeout_sec)


def retry_policy(max_attempts: int = 3, wait_seconds: float = 0.5) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=wait_seconds, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )


class HttpInvoker:
    """渠道 HTTP 调用器（每个支付客户端独占一个）"""

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        *,
        timeout_sec: float = 30.0,
        max_attempts: int = 3,
        retry_wait_seconds: float = 0.5,
        name: str = "http",
    ):
        self._client = http_client or client(timeout_sec)
        self._owns_client = http_client is None
        self._max_attempts = max_attempts
        self._retry_wait_seconds = retry_wait_seconds
        self.name = name

    def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        content: str | bytes | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        idempotency_key: str | None = None,
        idempotency_header: str = "idempotency-key",
    ) -> httpx.Response:
        """
        发送请求

        参数：
            idempotency_key: 幂等 key（为空时不携带），所有重试复用同一个值
            idempotency_header: 幂等 key 使用的请求头名称

        返回：2xx 响应
        异常：
            InvokerException: 传输层故障且重试耗尽
            httpx.HTTPStatusError: 渠道返回非 2xx
        """
        request_headers = dict(headers or {})
        if idempotency_key:
            request_headers[idempotency_header] = idempotency_key

        log = logger.bind(invoker=self.name, method=method, url=url)
        log.debug(
            "渠道请求",
            params=dict(params) if params else None,
            body=json_body if json_body is not None else content,
        )

        def send() -> httpx.Response:
            return self._client.request(
                method,
                url,
                json=json_body,
                content=content,
                params=params,
                headers=request_headers,
                auth=auth,
            )

        try:
            response = retry_policy(self._max_attempts, self._retry_wait_seconds)(send)
        except httpx.TransportError as exc:
            log.error("渠道请求传输失败", error=str(exc), attempts=self._max_attempts)
            raise InvokerException(
                message=f"调用支付渠道失败：{exc.__class__.__name__}",
                details={"url": url, "error": str(exc)},
            ) from exc

        log.debug("渠道响应", status_code=response.status_code, body=response.text)
        response.raise_for_status()
        return response

    def request_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """发送请求并解析 JSON 响应体"""
        response = self.request(method, url, **kwargs)
        if not response.content:
            return {}
        return response.json()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
