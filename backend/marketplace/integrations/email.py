"""
Transactional email contract.

LoggingEmailSender is the development sender: it records the message in
the log instead of delivering it.
"""

import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send(self, to: str, template: str, data: Dict[str, Any]) -> None:
        ...


class LoggingEmailSender:
    """Logs emails instead of sending them."""

    def send(self, to: str, template: str, data: Dict[str, Any]) -> None:
        logger.info(
            "email.logged",
            extra={"to": to, "template": template, "fields": sorted(data.keys())},
        )
