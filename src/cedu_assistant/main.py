from __future__ import annotations

import logging
import socket
import sys
import threading
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent
SRC_DIR = PACKAGE_DIR.parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from cedu_assistant.config import UserSettingsStore, get_settings
from cedu_assistant.services.notifier import Notifier
from cedu_assistant.services.session import AutomationSession
from cedu_assistant.ui.app import StudyAssistantApp

logger = logging.getLogger("cedu_assistant")


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _log_thread_exception(args: threading.ExceptHookArgs) -> None:
    # Console only; the window log is reserved for user-facing messages.
    thread_name = args.thread.name if args.thread else "unknown"
    logger.error(
        "Uncaught exception in thread %s",
        thread_name,
        exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
    )


def acquire_single_instance(port: int) -> socket.socket | None:
    """Bind a loopback port; ``None`` means another instance already holds it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind(("127.0.0.1", port))
        sock.listen(1)
    except OSError:
        sock.close()
        return None
    return sock


def main() -> None:
    configure_logging()
    threading.excepthook = _log_thread_exception

    settings = get_settings()
    guard = acquire_single_instance(settings.single_instance_port)
    if guard is None:
        logger.warning("%s is already running", settings.app_name)
        sys.exit(0)

    notifier = Notifier()
    store = UserSettingsStore(settings.app_data_dir)
    session = AutomationSession(notifier, store, settings=settings)
    app = StudyAssistantApp(session, notifier, settings)
    try:
        app.run()
    finally:
        session.shutdown()
        guard.close()


if __name__ == "__main__":
    main()
