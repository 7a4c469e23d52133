import sys

from praxis.cli.app import _build_services, main_menu, run_sweep
from praxis.db import initialize_db
from praxis.logging import configure_logging


def main() -> None:
    configure_logging()
    initialize_db()
    if sys.argv[1:] == ["sweep"]:
        _, session_service, challenge_service, _ = _build_services()
        run_sweep(session_service, challenge_service)
        return
    main_menu()


if __name__ == "__main__":
    main()
