"""
VaultAuth HTTP Transport Layer

Posts login requests to the account service over HTTPS.

Protocol:
- POST https://<server>/<endpoint>
- form-encoded parameters in request order
- session cookie PHPSESSID once a session exists

A failed exchange is reported as None, never raised: the negotiation
treats "no response at all" as its own outcome, distinct from an error
reply.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import attrs
import requests
import structlog

from vaultauth.core.types import LoginParameters, Session

logger = structlog.get_logger()

USER_AGENT = "VaultAuth/0.1.0"
DEFAULT_TIMEOUT = 30.0


class Transport(ABC):
    """Sends one request and returns the raw reply body."""

    @abstractmethod
    def post(
        self,
        server: str,
        endpoint: str,
        parameters: LoginParameters | Mapping[str, str],
        session: Optional[Session] = None,
    ) -> Optional[str]:
        """
        Post ``parameters`` to ``endpoint`` on ``server``.

        Returns:
            The reply body, or None on transport-level failure
        """
        ...


def _form_data(parameters: LoginParameters | Mapping[str, str]) -> Dict[str, str]:
    if isinstance(parameters, LoginParameters):
        return parameters.as_dict()
    return dict(parameters)


@attrs.define
class HTTPTransport(Transport):
    """
    HTTPS transport backed by a requests session.

    Attributes:
        timeout: Per request timeout in seconds
        verify: Verify the server certificate
        http_session: Underlying requests session (created on demand)
    """

    timeout: float = DEFAULT_TIMEOUT
    verify: bool = True
    http_session: Optional[Any] = None
    user_agent: str = USER_AGENT

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def _get_http_session(self) -> Any:
        if self.http_session is None:
            self.http_session = requests.Session()
            self.http_session.headers["User-Agent"] = self.user_agent
        return self.http_session

    def post(
        self,
        server: str,
        endpoint: str,
        parameters: LoginParameters | Mapping[str, str],
        session: Optional[Session] = None,
    ) -> Optional[str]:
        url = f"https://{server}/{endpoint}"
        cookies = {"PHPSESSID": session.session_id} if session is not None else None

        try:
            response = self._get_http_session().post(
                url,
                data=_form_data(parameters),
                cookies=cookies,
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.RequestException as e:
            self._logger.warning(
                "http_post_failed",
                server=server,
                endpoint=endpoint,
                error=str(e),
            )
            return None

        if response.status_code != 200:
            self._logger.warning(
                "http_post_bad_status",
                server=server,
                endpoint=endpoint,
                status=response.status_code,
            )
            return None

        self._logger.debug(
            "http_post_complete",
            server=server,
            endpoint=endpoint,
            length=len(response.text),
        )
        return response.text

    def close(self) -> None:
        """Close the underlying HTTP session."""
        if self.http_session is not None:
            self.http_session.close()
            self.http_session = None
