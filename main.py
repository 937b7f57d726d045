import sys
import traceback
from pathlib import Path

from dotenv import load_dotenv

# Load .env before settings are read
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _unhandled_exception(exc_type, exc_value, exc_tb):
    """Print unhandled exceptions with their traceback before exiting."""
    if exc_type is KeyboardInterrupt:
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    msg = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
    print("Unhandled exception:\n" + msg, file=sys.stderr, flush=True)


if __name__ == "__main__":
    """
    Entry point for HabitSync.
    Restores the stored session and opens the terminal client.
    """
    sys.excepthook = _unhandled_exception

    from habitsync.ui.console import main

    main()
