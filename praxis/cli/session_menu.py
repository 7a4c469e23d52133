from __future__ import annotations

import questionary
from rich.console import Console
from rich.table import Table

from praxis.cli.user_menu import BACK, select_user
from praxis.models.audit_log import AuditEventType
from praxis.services.audit_service import AuditService
from praxis.services.session_service import SessionService
from praxis.services.user_service import UserService

console = Console()


def session_management_menu(
    user_service: UserService,
    session_service: SessionService,
    audit_service: AuditService,
) -> None:
    while True:
        choice = questionary.select(
            "Manage Sessions",
            choices=["List Sessions", "Revoke All Sessions", BACK],
        ).ask()

        if choice is None or choice == BACK:
            break
        elif choice == "List Sessions":
            _list_sessions(user_service, session_service)
        elif choice == "Revoke All Sessions":
            _revoke_all(user_service, session_service, audit_service)


def _list_sessions(user_service: UserService, session_service: SessionService) -> None:
    user = select_user(user_service)
    if user is None:
        return

    sessions = session_service.list_sessions(user.id)
    if not sessions:
        console.print(f"[yellow]'{user.username}' has no active sessions.[/yellow]")
        return

    table = Table(title=f"Sessions of {user.username}")
    table.add_column("Id", style="dim")
    table.add_column("Device")
    table.add_column("Address")
    table.add_column("Last active")
    table.add_column("Expires")

    for s in sessions:
        last_active = s.last_active_at.strftime("%Y-%m-%d %H:%M") if s.last_active_at else "-"
        expires = s.expires_at.strftime("%Y-%m-%d %H:%M") if s.expires_at else "-"
        table.add_row(s.id, s.user_agent or "-", s.ip_address or "-", last_active, expires)

    console.print()
    console.print(table)
    console.print()


def _revoke_all(user_service: UserService, session_service: SessionService, audit_service: AuditService) -> None:
    user = select_user(user_service, "Revoke the sessions of which user?")
    if user is None:
        return

    count = session_service.revoke_all(user.id)
    audit_service.safe_log(
        AuditEventType.SESSION_REVOKE_OTHERS,
        source="cli",
        entity_type="user",
        entity_id=user.id,
        metadata={"revoked": count},
    )
    console.print(f"[green bold]Revoked {count} session(s) of '{user.username}'.[/green bold]")
