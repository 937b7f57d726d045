"""HabitSync API gateway client"""

from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..auth.credential_store import CredentialStore
from ..utils.exceptions import (
    ApiError,
    AuthorizationError,
    ServerError,
    TransportError,
    ValidationError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

SendFn = Callable[[httpx.Request], Awaitable[httpx.Response]]

AUTH_FAILURE_STATUSES = (401, 403)


def attach_credentials(send: SendFn, store: CredentialStore) -> SendFn:
    """
    Wrap send so every request carries the stored bearer token.

    The store is read on every call; a token cleared a moment ago is never
    attached from a cached copy.
    """

    async def send_with_credentials(request: httpx.Request) -> httpx.Response:
        token = await store.read()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        return await send(request)

    return send_with_credentials


def clear_on_authorization_failure(send: SendFn, store: CredentialStore) -> SendFn:
    """
    Wrap send so a 401/403 response clears the stored token before returning.

    Does not retry and does not touch session state; the caller still sees
    the failed response.
    """

    async def send_with_teardown(request: httpx.Request) -> httpx.Response:
        response = await send(request)
        if response.status_code in AUTH_FAILURE_STATUSES:
            logger.warning(
                "Credential rejected, clearing stored token",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            await store.clear()
        return response

    return send_with_teardown


def _parse_body(response: httpx.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        error = body.get("error") or body.get("message")
        if isinstance(error, str) and error:
            return error
    return default


def _error_details(body: Any) -> Dict[str, Any]:
    if isinstance(body, dict) and isinstance(body.get("details"), dict):
        return body["details"]
    return {}


def raise_for_response(response: httpx.Response) -> Dict[str, Any]:
    """
    Map a response onto the client's error taxonomy.

    Returns:
        The decoded JSON object for successful responses

    Raises:
        AuthorizationError: 401/403
        ValidationError: other 4xx, or a 2xx body with success: false
        ServerError: 5xx or a body that is not a JSON object
    """
    status = response.status_code
    body = _parse_body(response)

    if status in AUTH_FAILURE_STATUSES:
        raise AuthorizationError(
            _error_message(body, "Session expired. Please log in again."),
            status_code=status,
        )
    if 400 <= status < 500:
        raise ValidationError(
            _error_message(body, f"Request rejected (HTTP {status})"),
            status_code=status,
            details=_error_details(body),
        )
    if status >= 500:
        raise ServerError(
            _error_message(body, "Server error. Please try again."),
            status_code=status,
        )
    if not isinstance(body, dict):
        raise ServerError("Malformed response from server", status_code=status)
    if body.get("success") is False:
        raise ValidationError(
            _error_message(body, "Request was not successful"),
            status_code=status,
            details=_error_details(body),
        )
    return body


class GatewayClient:
    """Single HTTP client bound to the service base URL"""

    def __init__(
        self,
        base_url: str,
        credential_store: CredentialStore,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credential_store = credential_store
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )
        self._send: SendFn = clear_on_authorization_failure(
            attach_credentials(self._http.send, credential_store),
            credential_store,
        )

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send a request through the credential stages.

        Args:
            method: HTTP method
            path: Path relative to the base URL (e.g. "/habits")
            json: Optional JSON body

        Returns:
            Decoded JSON object

        Raises:
            TransportError: No response (network failure, timeout)
            ApiError subclasses: see raise_for_response
        """
        request = self._http.build_request(method, path.lstrip("/"), json=json)
        try:
            response = await self._send(request)
        except httpx.TimeoutException as e:
            logger.error("Request timeout", method=method, path=path, error=str(e))
            raise TransportError("Request timed out. Please try again.") from e
        except httpx.TransportError as e:
            logger.error("Request failed", method=method, path=path, error=str(e))
            raise TransportError(f"Could not reach server: {e}") from e

        logger.debug(
            "Received response",
            method=method,
            path=path,
            status_code=response.status_code,
        )
        try:
            return raise_for_response(response)
        except ApiError as e:
            logger.info(
                "Request rejected",
                method=method,
                path=path,
                status_code=e.status_code,
                error=e.message,
            )
            raise

    async def get(self, path: str) -> Dict[str, Any]:
        return await self.request("GET", path)

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("PUT", path, json=json)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
