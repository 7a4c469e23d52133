import questionary
from rich.console import Console

from praxis.cli.session_menu import session_management_menu
from praxis.cli.user_menu import user_management_menu
from praxis.repositories.factory import (
    get_audit_log_repository,
    get_challenge_repository,
    get_pending_login_repository,
    get_session_repository,
    get_user_repository,
)
from praxis.services.audit_service import AuditService
from praxis.services.challenge_service import ChallengeService
from praxis.services.credential_service import CredentialService
from praxis.services.session_service import SessionService
from praxis.services.user_service import UserService

console = Console()


def _build_services() -> tuple[UserService, SessionService, ChallengeService, AuditService]:
    user_repo = get_user_repository()
    session_service = SessionService(get_session_repository(), get_pending_login_repository())
    return (
        UserService(user_repo, CredentialService(user_repo), session_service),
        session_service,
        ChallengeService(get_challenge_repository()),
        AuditService(get_audit_log_repository()),
    )


def run_sweep(session_service: SessionService, challenge_service: ChallengeService) -> dict[str, int]:
    removed = session_service.sweep()
    removed["challenges"] = challenge_service.sweep()
    console.print(
        f"[green]Removed {removed['sessions']} session(s), {removed['pending_logins']} pending login(s) "
        f"and {removed['challenges']} challenge(s).[/green]"
    )
    return removed


def main_menu() -> None:
    user_service, session_service, challenge_service, audit_service = _build_services()

    console.print()
    console.print("[bold]Praxis Identity[/bold]", style="cyan")
    console.print()

    while True:
        choice = questionary.select(
            "Main Menu",
            choices=[
                "Manage Users",
                "Manage Sessions",
                "Run Expiry Sweep",
                "Exit",
            ],
        ).ask()

        if choice is None or choice == "Exit":
            console.print("[bold]Bye![/bold]")
            break
        elif choice == "Manage Users":
            user_management_menu(user_service, audit_service)
        elif choice == "Manage Sessions":
            session_management_menu(user_service, session_service, audit_service)
        elif choice == "Run Expiry Sweep":
            run_sweep(session_service, challenge_service)
