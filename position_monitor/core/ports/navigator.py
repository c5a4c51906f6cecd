from abc import ABC, abstractmethod


class Navigator(ABC):
    """
    Presentation-side collaborator told to bring a position into view
    when the user acts on a notification.
    """

    @abstractmethod
    def go_to_position(self, position_id: str) -> None:
        raise NotImplementedError
