from typing import Iterable, List, Optional

from mailparse.base import EmailParser
from mailparse.records import EmailMessage

import logging

logger = logging.getLogger(__name__)


class ParserRegistry:
    """Ordered set of parsers; the first one that accepts an email wins."""

    def __init__(self, parsers: Iterable[EmailParser] = ()):
        self._parsers: List[EmailParser] = list(parsers)

    def register(self, parser: EmailParser) -> None:
        self._parsers.append(parser)

    @property
    def parsers(self) -> List[EmailParser]:
        return list(self._parsers)

    def find_parser(self, email: EmailMessage) -> Optional[EmailParser]:
        """
        Select the parser for an email.

        Args:
            email: Email to route

        Returns:
            First registered parser whose can_parse() is true, or None
        """
        for parser in self._parsers:
            try:
                if parser.can_parse(email):
                    return parser
            except Exception as e:
                logger.warning(
                    f"Parser {type(parser).__name__} failed can_parse for "
                    f"message {email.provider_message_id}: {e}"
                )
        return None
