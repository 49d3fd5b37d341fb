"""
Ports (interfaces) for tmemo.

These define the contract that infrastructure and interface adapters must
implement. Application services depend on these abstractions, not concrete
implementations.
"""

from abc import ABC, abstractmethod

from .models import CardState, Deck, Grade, SessionAction


class DeckRepository(ABC):
    """
    Port for loading and saving the deck.

    Implementations:
        - JsonDeckRepository: the ``tmemodeck.json`` file in the deck root.
    """

    @abstractmethod
    def exists(self) -> bool:
        """Whether the deck has been initialized."""

    @abstractmethod
    def load(self) -> Deck:
        """
        Load the persisted deck.

        Raises:
            DeckNotInitializedError: No deck exists yet.
            PersistenceError: The deck exists but cannot be read or parsed.
        """

    @abstractmethod
    def save(self, deck: Deck) -> None:
        """
        Persist a complete snapshot of the deck.

        Raises:
            PersistenceError: The snapshot could not be written.
        """


class ReviewOperator(ABC):
    """
    Port for the person answering cards.

    Implementations:
        - TerminalOperator: prompts on stdin/stdout.
    """

    @abstractmethod
    def show_front(self, card: CardState, remaining: int) -> None:
        """Present the question side of ``card``."""

    @abstractmethod
    def show_back(self, card: CardState) -> None:
        """Reveal the answer side of ``card``."""

    @abstractmethod
    def read_grade(self, previews: dict[Grade, int]) -> Grade | SessionAction | None:
        """
        Wait for an answer.

        Args:
            previews: Interval in days each grade would schedule.

        Returns:
            The chosen grade, SessionAction.BURY to set the card aside, or
            None to end the session.
        """
