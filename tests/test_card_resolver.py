import logging

from spendsync.cards.card_resolver import CardResolver

CARDS = {
    "regalia": {
        "name": "HDFC Regalia Gold",
        "bank": "HDFC Bank",
        "last_four_digits": "4321",
        "milestones": {
            "quarterly_bonus": {"amount": 150000, "durations": ["quarterly"], "description": "Quarterly bonus"},
        },
    },
    "sapphire": {"name": "Chase Sapphire", "bank": "Chase", "last_four_digits": "1111"},
}


def test_resolves_configured_card():
    card = CardResolver(CARDS).resolve("4321")

    assert card.card_name == "HDFC Regalia Gold"
    assert card.bank == "HDFC Bank"
    assert [m.id for m in card.milestones] == ["quarterly_bonus"]
    assert card.milestones[0].duration == "quarterly"


def test_unknown_card_falls_back_to_last_four():
    resolver = CardResolver(CARDS)

    assert resolver.resolve("9999") is None
    assert resolver.resolve_card_name("9999") == "Card ••9999"
    assert resolver.resolve_card_name(None) is None


def test_duplicate_last_four_keeps_later_entry_and_warns(caplog):
    cards = dict(CARDS, other={"name": "Other Card", "last_four_digits": "4321"})

    with caplog.at_level(logging.WARNING):
        resolver = CardResolver(cards)

    assert resolver.resolve_card_name("4321") == "Other Card"
    assert "shares last four digits 4321" in caplog.text


def test_missing_config_file_gives_empty_resolver(tmp_path):
    resolver = CardResolver.from_file(str(tmp_path / "missing.json"))

    assert resolver.all_cards() == []


def test_bundled_config_loads():
    names = {card.card_name for card in CardResolver.from_file().all_cards()}

    assert "HDFC Regalia Gold" in names
