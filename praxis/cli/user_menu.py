from __future__ import annotations

import questionary
from rich.console import Console
from rich.table import Table

from praxis.constants import ROLE_ADMIN
from praxis.errors import PasswordRejected
from praxis.models.audit_log import AuditEventType
from praxis.models.user import User
from praxis.services.audit_serializers import serialize_user
from praxis.services.audit_service import AuditService
from praxis.services.user_service import UserService

console = Console()

BACK = "Back"


def user_management_menu(user_service: UserService, audit_service: AuditService) -> None:
    while True:
        choice = questionary.select(
            "Manage Users",
            choices=[
                "Create User",
                "Reset Password",
                "Promote to Admin",
                "Delete User",
                "List Users",
                BACK,
            ],
        ).ask()

        if choice is None or choice == BACK:
            break
        elif choice == "Create User":
            _create_user(user_service, audit_service)
        elif choice == "Reset Password":
            _reset_password(user_service, audit_service)
        elif choice == "Promote to Admin":
            _promote_admin(user_service, audit_service)
        elif choice == "Delete User":
            _delete_user(user_service, audit_service)
        elif choice == "List Users":
            _list_users(user_service)


def select_user(user_service: UserService, prompt: str = "Select a user:") -> User | None:
    users = user_service.list_users()
    if not users:
        console.print("[yellow]No users registered.[/yellow]")
        return None

    choices = [u.username for u in users] + [BACK]
    username = questionary.select(prompt, choices=choices).ask()
    if username is None or username == BACK:
        return None
    return next((u for u in users if u.username == username), None)


def _ask_new_password(label: str = "Password:") -> str | None:
    password = questionary.password(label).ask()
    if not password:
        console.print("[yellow]Cancelled.[/yellow]")
        return None
    confirm = questionary.password("Confirm password:").ask()
    if password != confirm:
        console.print("[red]Passwords do not match.[/red]")
        return None
    return password


def _create_user(user_service: UserService, audit_service: AuditService) -> None:
    console.print()
    console.print("[bold]New User[/bold]", style="cyan")

    username = questionary.text("Username:").ask()
    if not username:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    password = _ask_new_password()
    if password is None:
        return

    try:
        user = user_service.create_user(username, password)

        audit_service.safe_log(
            AuditEventType.USER_CREATE,
            source="cli",
            entity_type="user",
            entity_id=user.id,
            entity_uuid=user.uuid,
            new_state=serialize_user(user),
        )

        console.print(f"[green bold]User '{user.username}' created.[/green bold]")
    except Exception as e:
        console.print(f"[red]Could not create user: {e}[/red]")


def _reset_password(user_service: UserService, audit_service: AuditService) -> None:
    console.print()
    console.print("[bold]Reset Password[/bold]", style="cyan")

    user = select_user(user_service)
    if user is None:
        return

    password = _ask_new_password("New password:")
    if password is None:
        return

    try:
        user_service.reset_password(user.username, password)
    except PasswordRejected as e:
        console.print(f"[red]{e}[/red]")
        return

    audit_service.safe_log(
        AuditEventType.USER_CHANGE_PASSWORD,
        source="cli",
        entity_type="user",
        entity_id=user.id,
        metadata={"username": user.username},
    )
    console.print(f"[green bold]Password for '{user.username}' reset; all sessions revoked.[/green bold]")


def _promote_admin(user_service: UserService, audit_service: AuditService) -> None:
    user = select_user(user_service, "Promote which user?")
    if user is None:
        return
    if user.role == ROLE_ADMIN:
        console.print(f"[yellow]'{user.username}' is already an admin.[/yellow]")
        return

    promoted = user_service.promote_admin(user.id)
    audit_service.safe_log(
        AuditEventType.USER_PROMOTE_ADMIN,
        source="cli",
        entity_type="user",
        entity_id=user.id,
        previous_state=serialize_user(user),
        new_state=serialize_user(promoted),
    )
    console.print(f"[green bold]'{user.username}' is now an admin.[/green bold]")


def _delete_user(user_service: UserService, audit_service: AuditService) -> None:
    user = select_user(user_service, "Delete which user?")
    if user is None:
        return
    if not questionary.confirm(f"Delete '{user.username}' and revoke all of their sessions?", default=False).ask():
        console.print("[yellow]Cancelled.[/yellow]")
        return

    user_service.delete_user(user.id)
    audit_service.safe_log(
        AuditEventType.USER_DELETE,
        source="cli",
        entity_type="user",
        entity_id=user.id,
        entity_uuid=user.uuid,
        previous_state=serialize_user(user),
    )
    console.print(f"[green bold]User '{user.username}' deleted.[/green bold]")


def _list_users(user_service: UserService) -> None:
    users = user_service.list_users()

    if not users:
        console.print("[yellow]No users registered.[/yellow]")
        return

    table = Table(title="Users")
    table.add_column("#", style="dim")
    table.add_column("Username", style="bold")
    table.add_column("E-mail")
    table.add_column("Role")
    table.add_column("Created")

    for u in users:
        created = u.created_at.strftime("%Y-%m-%d %H:%M") if u.created_at else "-"
        email = u.email or "-"
        if u.email and not u.email_verified:
            email += " (unverified)"
        table.add_row(str(u.id), u.username, email, u.role, created)

    console.print()
    console.print(table)
    console.print()
