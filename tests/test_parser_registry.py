from typing import List

from mailparse import EmailParser, ParserRegistry, default_registry
from mailparse.records import EmailMessage, ParsedTransaction
from tests.fakes import make_email


class BrokenParser(EmailParser):
    issuer = "Broken"

    def can_parse(self, email: EmailMessage) -> bool:
        raise ValueError("bad sender header")

    def parse_transactions(self, email: EmailMessage) -> List[ParsedTransaction]:
        return []


class CatchAllParser(EmailParser):
    issuer = "Any"

    def can_parse(self, email: EmailMessage) -> bool:
        return True

    def parse_transactions(self, email: EmailMessage) -> List[ParsedTransaction]:
        return []


def test_routes_by_sender(user_id):
    registry = default_registry()

    hdfc = registry.find_parser(make_email("a", user_id, "", sender="alerts@hdfcbank.net"))
    chase = registry.find_parser(make_email("b", user_id, "", subject="Alert", sender="alerts@chase.com"))
    none = registry.find_parser(make_email("c", user_id, "", subject="Newsletter", sender="news@example.com"))

    assert hdfc.issuer == "HDFC"
    assert chase.issuer == "Chase"
    assert none is None


def test_first_registered_parser_wins(user_id):
    first, second = CatchAllParser(), CatchAllParser()
    registry = ParserRegistry([first, second])

    assert registry.find_parser(make_email("a", user_id, "")) is first


def test_raising_parser_is_skipped(user_id):
    fallback = CatchAllParser()
    registry = ParserRegistry([BrokenParser()])
    registry.register(fallback)

    assert registry.find_parser(make_email("a", user_id, "")) is fallback
    assert len(registry.parsers) == 2
