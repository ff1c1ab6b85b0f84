"""Key-value store clients used by the locks."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx
import redis
from redis.exceptions import RedisError

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    StoreUnavailableError,
)


class Store(ABC):
    """A shared store with expiring keys and atomic script execution."""

    @abstractmethod
    def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool:
        """Create ``key`` with ``value`` and a TTL unless it already exists.

        Returns:
            True if the key was created
        """

    @abstractmethod
    def refresh_ttl(self, key: str, ttl_ms: int) -> bool:
        """Reset the TTL of ``key`` without touching its value."""

    @abstractmethod
    def execute(self, script: str, keys: Sequence[str], args: Sequence[Any]) -> Any:
        """Run a Lua script atomically against ``keys``."""

    def close(self) -> None:
        """Release connections held by the store."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class RedisStore(Store):
    """Store backed by a redis-py client."""

    def __init__(self, client: redis.Redis):
        """Wrap an existing client.

        Args:
            client: A connected ``redis.Redis`` instance
        """
        self.client = client
        self._scripts: Dict[str, Any] = {}
        self._owns_client = False

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStore":
        """Build a store from a ``redis://`` URL.

        The store owns the client and closes it on ``close()``.
        """
        try:
            client = redis.Redis.from_url(url, **kwargs)
        except ValueError as e:
            raise ConfigurationError(f"Invalid redis URL {url!r}: {e}")
        store = cls(client)
        store._owns_client = True
        return store

    def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool:
        try:
            return bool(self.client.set(key, value, nx=True, px=ttl_ms))
        except RedisError as e:
            raise StoreUnavailableError(f"SET NX failed for {key!r}: {e}") from e

    def refresh_ttl(self, key: str, ttl_ms: int) -> bool:
        try:
            return bool(self.client.pexpire(key, ttl_ms))
        except RedisError as e:
            raise StoreUnavailableError(f"PEXPIRE failed for {key!r}: {e}") from e

    def execute(self, script: str, keys: Sequence[str], args: Sequence[Any]) -> Any:
        # register once; redis-py falls back from EVALSHA to EVAL on NOSCRIPT
        registered = self._scripts.get(script)
        if registered is None:
            registered = self.client.register_script(script)
            self._scripts[script] = registered
        try:
            return registered(keys=list(keys), args=list(args))
        except RedisError as e:
            raise StoreUnavailableError(f"Script failed for {list(keys)!r}: {e}") from e

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


class HttpStore(Store):
    """Store reached through a Webdis-compatible HTTP gateway in front of Redis.

    Commands are POSTed as slash-separated, percent-encoded segments and the
    gateway answers with ``{"COMMAND": reply}`` JSON documents.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:7379",
        auth: Optional[Tuple[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the HTTP store.

        Args:
            base_url: The base URL of the gateway
            auth: Optional (username, password) for HTTP basic auth
            timeout: Request timeout in seconds
            transport: Custom httpx transport, mainly for tests
        """
        if not base_url.startswith(("http://", "https://")):
            raise ConfigurationError("base_url must be an http(s) URL")
        if timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(auth=auth, timeout=timeout, transport=transport)

    def _handle_response(self, response: httpx.Response) -> Any:
        """Handle HTTP response and raise appropriate exceptions."""
        if response.status_code in (401, 403):
            raise AuthenticationError("Gateway rejected the store credentials")
        elif response.status_code >= 400:
            raise StoreUnavailableError(f"HTTP {response.status_code}: {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise StoreUnavailableError(f"Failed to parse response: {e}") from e

    def _command(self, name: str, *args: Any) -> Any:
        """Run one command and return its unwrapped reply."""
        body = "/".join(quote(str(part), safe="") for part in (name,) + args)
        try:
            response = self.client.post(self.base_url + "/", content=body)
        except httpx.RequestError as e:
            raise StoreUnavailableError(f"Network error running {name}: {e}") from e

        data = self._handle_response(response)
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"Unexpected reply to {name}: {data!r}")
        reply = data.get(name)
        # status and error replies come back as [ok, message]
        if isinstance(reply, list) and len(reply) == 2 and isinstance(reply[0], bool):
            ok, message = reply
            if not ok:
                raise StoreUnavailableError(f"{name} failed: {message}")
            return message
        return reply

    def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool:
        return self._command("SET", key, value, "NX", "PX", ttl_ms) == "OK"

    def refresh_ttl(self, key: str, ttl_ms: int) -> bool:
        return bool(self._command("PEXPIRE", key, ttl_ms))

    def execute(self, script: str, keys: Sequence[str], args: Sequence[Any]) -> Any:
        return self._command("EVAL", script, len(keys), *keys, *args)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()


def as_store(client: Any) -> Store:
    """Return ``client`` if it is a Store, otherwise wrap it as a redis client."""
    if isinstance(client, Store):
        return client
    if client is None:
        raise ConfigurationError("A store or redis client is required")
    return RedisStore(client)
