from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user asks to log out
    """

    bubble = True


class SessionChangedMessage(Message):
    """
    Fired after a sign-in (guest cart already merged) or a sign-out,
    so screens can refresh their user info and menus
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired by the app whenever the cart service signals a mutation or a new remote snapshot.
    Carries the item count so the sidebar badge can update without another read.

    Must be posted at App level to reach screens other than the active one.
    """

    bubble = True

    def __init__(self, count: int = 0) -> None:
        super().__init__()
        self.count = count


class ProductsChangedMessage(Message):
    """
    Fired by the admin product screen after add/edit/delete, the catalog screen reloads on it
    """

    bubble = True


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
