"""Interactive prompts."""

from trunkflow.lib.errors import OperationCanceled


def confirm(message: str, default: bool = False) -> bool:
    """Ask a yes/no question. End of input counts as the default answer."""
    default_str = "Y/n" if default else "y/N"
    try:
        value = input(f"{message} [{default_str}]: ").strip().lower()
    except EOFError:
        return default
    if not value:
        return default
    return value in ("y", "yes")


def confirm_or_cancel(message: str, default: bool = False) -> None:
    """Like confirm(), but raise OperationCanceled on a negative answer."""
    if not confirm(message, default):
        raise OperationCanceled()


def prompt_index(message: str, count: int) -> int:
    """Ask for a 1-based index into a list of count items.

    Returns the 0-based index. An empty answer or end of input cancels.
    """
    while True:
        try:
            selection = input(f"{message} [1-{count}, Enter to abort]: ").strip()
        except EOFError:
            raise OperationCanceled() from None
        if not selection:
            raise OperationCanceled()
        try:
            index = int(selection)
        except ValueError:
            print("Please enter a valid number")
            continue
        if 1 <= index <= count:
            return index - 1
        print(f"Please enter a number between 1 and {count}")
