"""
VaultAuth Response Parser

Interprets login replies. The service answers every login request with a
small XML document, either

    <response><ok uid="..." sessionid="..." token="..." privatekeyenc="..."/></response>

for an accepted login, or

    <response><error cause="..." message="..." server="..." .../></response>

for everything else. All lookups are pure functions of the reply text.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Optional

import attrs
import structlog

from vaultauth.core.crypto import decrypt_private_key
from vaultauth.core.types import Session

logger = structlog.get_logger()


class ResponseParser(ABC):
    """Extracts error fields and sessions from raw login replies."""

    @abstractmethod
    def error_field(self, response: str, name: str) -> Optional[str]:
        """Return the named field of an error reply, or None if absent."""
        ...

    @abstractmethod
    def parse_session(self, response: str, key: bytes) -> Optional[Session]:
        """Return the session of a well-formed success reply, or None."""
        ...


def _parse_root(response: str) -> Optional[ET.Element]:
    try:
        return ET.fromstring(response)
    except ET.ParseError as e:
        logger.debug("xml_parse_error", error=str(e))
        return None


def _find_child(root: ET.Element, tag: str) -> Optional[ET.Element]:
    """Find ``tag`` as the root itself or as a direct child of <response>."""
    if root.tag == tag:
        return root
    if root.tag == "response":
        return root.find(tag)
    return None


@attrs.define
class XMLResponseParser(ResponseParser):
    """
    Parser for the service's XML login replies.

    Malformed documents are treated like replies without the requested
    element: every lookup returns None.
    """

    def error_field(self, response: str, name: str) -> Optional[str]:
        root = _parse_root(response)
        if root is None:
            return None
        error = _find_child(root, "error")
        if error is None:
            return None
        return error.get(name)

    def parse_session(self, response: str, key: bytes) -> Optional[Session]:
        root = _parse_root(response)
        if root is None:
            return None
        ok = _find_child(root, "ok")
        if ok is None:
            return None

        uid = ok.get("uid")
        session_id = ok.get("sessionid")
        token = ok.get("token")
        if not (uid and session_id and token):
            logger.debug("incomplete_session_reply")
            return None

        private_key = None
        encrypted = ok.get("privatekeyenc")
        if encrypted:
            private_key = decrypt_private_key(encrypted, key)

        return Session(
            uid=uid,
            session_id=session_id,
            token=token,
            private_key=private_key,
        )
