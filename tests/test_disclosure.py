"""
Tests for the one-time secret disclosure
"""

import threading

from bank_onboarding.disclosure import SecretDisclosure
from bank_onboarding.models import Card, SafeCard


def make_card(temp_pin="4821"):
    return Card(
        id="7", account_id="42", card_number="4111111111111111",
        cvv="123", expiry="12/29", temp_pin=temp_pin
    )


class TestSecretDisclosure:

    def test_first_reveal_returns_full_card(self):
        disclosure = SecretDisclosure(make_card())

        card = disclosure.reveal()

        assert isinstance(card, Card)
        assert card.temp_pin == "4821"

    def test_later_reveals_are_redacted(self):
        disclosure = SecretDisclosure(make_card())
        disclosure.reveal()

        for _ in range(3):
            card = disclosure.reveal()
            assert isinstance(card, SafeCard)
            assert card.card_number == "4111111111111111"

    def test_acknowledge_discards_pin(self):
        disclosure = SecretDisclosure(make_card())

        safe = disclosure.acknowledge()

        assert isinstance(safe, SafeCard)
        assert isinstance(disclosure.reveal(), SafeCard)

    def test_card_without_pin_never_discloses(self):
        disclosure = SecretDisclosure(make_card(temp_pin=None))

        assert isinstance(disclosure.reveal(), SafeCard)
        assert isinstance(disclosure.reveal(), SafeCard)

    def test_concurrent_reveals_disclose_once(self):
        disclosure = SecretDisclosure(make_card())
        results = []
        lock = threading.Lock()

        def read():
            card = disclosure.reveal()
            with lock:
                results.append(card)

        threads = [threading.Thread(target=read) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for card in results if isinstance(card, Card)) == 1

    def test_safe_card_available_before_reveal(self):
        disclosure = SecretDisclosure(make_card())

        assert disclosure.safe_card.masked_number == "**** **** **** 1111"
        assert disclosure.reveal().temp_pin == "4821"
