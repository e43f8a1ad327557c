"""Storage port for decks and quiz attempts, with the in-process default."""

from __future__ import annotations

import threading
from typing import Optional, Protocol

from app.modules.study.models import Deck, QuizAttempt


class StoragePort(Protocol):
    async def save_deck(self, deck: Deck) -> None: ...

    async def get_deck_history(self) -> list[Deck]: ...

    async def get_deck(self, deck_id: str) -> Optional[Deck]: ...

    async def save_quiz_result(self, attempt: QuizAttempt) -> None: ...

    async def get_quiz_history(self) -> list[QuizAttempt]: ...


class InMemoryStorage:
    def __init__(self) -> None:
        self._decks: dict[str, Deck] = {}
        self._attempts: dict[str, QuizAttempt] = {}
        self._lock = threading.Lock()

    async def save_deck(self, deck: Deck) -> None:
        with self._lock:
            self._decks[deck.id] = deck

    async def get_deck_history(self) -> list[Deck]:
        with self._lock:
            return sorted(self._decks.values(), key=lambda d: d.timestamp, reverse=True)

    async def get_deck(self, deck_id: str) -> Optional[Deck]:
        with self._lock:
            return self._decks.get(deck_id)

    async def save_quiz_result(self, attempt: QuizAttempt) -> None:
        with self._lock:
            self._attempts[attempt.id] = attempt

    async def get_quiz_history(self) -> list[QuizAttempt]:
        with self._lock:
            return sorted(self._attempts.values(), key=lambda a: a.timestamp, reverse=True)
