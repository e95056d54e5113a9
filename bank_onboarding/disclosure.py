"""
Secret Disclosure Module

Holds a freshly issued card in volatile memory and reveals its temporary PIN
exactly once. Every later read, and everything handed to storage, is the
redacted SafeCard.
"""

import threading
from typing import Optional, Union

from .models import Card, SafeCard


class SecretDisclosure:
    """One-time reveal of a card's temporary PIN"""
    
    def __init__(self, card: Card):
        # Without a PIN there is nothing to reveal beyond the redacted card
        self._card: Optional[Card] = card if card.temp_pin else None
        self._safe_card = card.redact()
        self._revealed = False
        self._lock = threading.Lock()
    
    @property
    def safe_card(self) -> SafeCard:
        """Redacted card, safe to persist at any time"""
        return self._safe_card
    
    def reveal(self) -> Union[Card, SafeCard]:
        """Return the full card on the first call, the redacted card afterwards"""
        with self._lock:
            if self._revealed or self._card is None:
                return self._safe_card
            self._revealed = True
            return self._card
    
    def acknowledge(self) -> SafeCard:
        """Drop the PIN for good and return the redacted card"""
        with self._lock:
            self._card = None
            self._revealed = True
            return self._safe_card
