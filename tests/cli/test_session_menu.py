from datetime import datetime
from unittest.mock import MagicMock, patch

from praxis.models.session import SessionInfo
from praxis.models.user import User


class TestSessionManagementMenu:
    @patch("praxis.cli.session_menu.questionary")
    def test_back_exits(self, mock_q):
        from praxis.cli.session_menu import session_management_menu

        mock_q.select.return_value.ask.return_value = "Back"
        session_management_menu(MagicMock(), MagicMock(), MagicMock())

    @patch("praxis.cli.session_menu._list_sessions")
    @patch("praxis.cli.session_menu.questionary")
    def test_route_list(self, mock_q, mock_list):
        from praxis.cli.session_menu import session_management_menu

        user_svc, session_svc = MagicMock(), MagicMock()
        mock_q.select.return_value.ask.side_effect = ["List Sessions", "Back"]
        session_management_menu(user_svc, session_svc, MagicMock())
        mock_list.assert_called_once_with(user_svc, session_svc)

    @patch("praxis.cli.session_menu._revoke_all")
    @patch("praxis.cli.session_menu.questionary")
    def test_route_revoke(self, mock_q, mock_revoke):
        from praxis.cli.session_menu import session_management_menu

        user_svc, session_svc, audit_svc = MagicMock(), MagicMock(), MagicMock()
        mock_q.select.return_value.ask.side_effect = ["Revoke All Sessions", None]
        session_management_menu(user_svc, session_svc, audit_svc)
        mock_revoke.assert_called_once_with(user_svc, session_svc, audit_svc)


class TestListSessions:
    @patch("praxis.cli.session_menu.select_user")
    def test_no_sessions(self, mock_select):
        from praxis.cli.session_menu import _list_sessions

        mock_select.return_value = User(id=1, username="alice")
        session_svc = MagicMock()
        session_svc.list_sessions.return_value = []
        _list_sessions(MagicMock(), session_svc)
        session_svc.list_sessions.assert_called_once_with(1)

    @patch("praxis.cli.session_menu.select_user")
    def test_with_sessions(self, mock_select):
        from praxis.cli.session_menu import _list_sessions

        mock_select.return_value = User(id=1, username="alice")
        session_svc = MagicMock()
        session_svc.list_sessions.return_value = [
            SessionInfo(id="S1", user_agent="pytest", last_active_at=datetime(2026, 1, 1), expires_at=None),
            SessionInfo(id="S2"),
        ]
        _list_sessions(MagicMock(), session_svc)

    @patch("praxis.cli.session_menu.select_user")
    def test_cancelled(self, mock_select):
        from praxis.cli.session_menu import _list_sessions

        mock_select.return_value = None
        session_svc = MagicMock()
        _list_sessions(MagicMock(), session_svc)
        session_svc.list_sessions.assert_not_called()


class TestRevokeAll:
    @patch("praxis.cli.session_menu.select_user")
    def test_revokes_and_audits(self, mock_select):
        from praxis.cli.session_menu import _revoke_all

        mock_select.return_value = User(id=3, username="alice")
        session_svc = MagicMock()
        session_svc.revoke_all.return_value = 2
        audit_svc = MagicMock()

        _revoke_all(MagicMock(), session_svc, audit_svc)

        session_svc.revoke_all.assert_called_once_with(3)
        assert audit_svc.safe_log.call_args.kwargs["metadata"] == {"revoked": 2}
