"""
Email parser capability: turns transactional bank/card emails into
structured transactions and statements.
"""
from mailparse.records import EmailMessage, ParsedTransaction, ParsedStatement
from mailparse.base import EmailParser
from mailparse.registry import ParserRegistry
from mailparse.hdfc import HdfcAlertParser
from mailparse.chase import ChaseAlertParser


def default_registry() -> ParserRegistry:
    """Registry with the bundled parsers in their default order"""
    return ParserRegistry([HdfcAlertParser(), ChaseAlertParser()])


__all__ = [
    "EmailMessage",
    "ParsedTransaction",
    "ParsedStatement",
    "EmailParser",
    "ParserRegistry",
    "HdfcAlertParser",
    "ChaseAlertParser",
    "default_registry",
]
