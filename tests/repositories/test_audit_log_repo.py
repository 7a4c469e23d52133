from praxis.models.audit_log import AuditEventType, AuditLog
from praxis.repositories.sqlalchemy import SQLAlchemyAuditLogRepository


def _sample_audit_log(**overrides) -> AuditLog:
    defaults = dict(
        event_type=AuditEventType.USER_LOGIN,
        actor_id=1,
        actor_username="alice",
        source="web",
        entity_type="user",
        entity_id=1,
        entity_uuid="01J0000000000000000000000A",
        previous_state=None,
        new_state=None,
        metadata={"ip": "127.0.0.1", "method": "password"},
    )
    defaults.update(overrides)
    return AuditLog(**defaults)


class TestAuditLogRepoCRUD:
    def test_create_and_retrieve(self, audit_repo):
        created = audit_repo.create(_sample_audit_log())

        assert created.id is not None
        assert len(created.uuid) == 26
        assert created.event_type == "user.login"
        assert created.actor_id == 1
        assert created.actor_username == "alice"
        assert created.source == "web"
        assert created.entity_type == "user"
        assert created.previous_state is None
        assert created.new_state is None
        assert created.metadata == {"ip": "127.0.0.1", "method": "password"}
        assert created.created_at is not None

    def test_create_with_states(self, audit_repo):
        created = audit_repo.create(
            _sample_audit_log(
                event_type=AuditEventType.USER_PROMOTE_ADMIN,
                previous_state={"role": "user"},
                new_state={"role": "admin"},
            )
        )
        assert created.previous_state == {"role": "user"}
        assert created.new_state == {"role": "admin"}

    def test_actor_may_be_anonymous(self, audit_repo):
        created = audit_repo.create(
            _sample_audit_log(event_type=AuditEventType.USER_LOGIN_FAILED, actor_id=None, actor_username="")
        )
        assert created.actor_id is None


class TestAuditLogRepoQueries:
    def test_list_for_user_includes_actions_on_account(self, audit_repo):
        audit_repo.create(_sample_audit_log(actor_id=1, entity_id=1))
        audit_repo.create(_sample_audit_log(event_type=AuditEventType.USER_DELETE, actor_id=9, entity_id=1))
        audit_repo.create(_sample_audit_log(actor_id=2, entity_id=2))

        results = audit_repo.list_for_user(1)
        assert [r.event_type for r in results] == [AuditEventType.USER_DELETE, AuditEventType.USER_LOGIN]

    def test_list_for_user_ignores_other_entity_types(self, audit_repo):
        audit_repo.create(_sample_audit_log(actor_id=2, entity_type="passkey", entity_id=1))
        assert audit_repo.list_for_user(1) == []

    def test_list_for_user_with_limit(self, audit_repo):
        for _ in range(5):
            audit_repo.create(_sample_audit_log(actor_id=1))
        assert len(audit_repo.list_for_user(1)) == 5
        assert len(audit_repo.list_for_user(1, limit=3)) == 3

    def test_list_recent_ordered_desc(self, audit_repo):
        audit_repo.create(_sample_audit_log(event_type="first"))
        audit_repo.create(_sample_audit_log(event_type="second"))

        results = audit_repo.list_recent()
        assert [r.event_type for r in results] == ["second", "first"]

    def test_list_recent_by_event_type(self, audit_repo):
        audit_repo.create(_sample_audit_log())
        audit_repo.create(_sample_audit_log(event_type=AuditEventType.USER_LOGOUT))

        results = audit_repo.list_recent(event_type=AuditEventType.USER_LOGOUT)
        assert [r.event_type for r in results] == [AuditEventType.USER_LOGOUT]

    def test_list_recent_with_limit(self, audit_repo):
        for _ in range(5):
            audit_repo.create(_sample_audit_log())
        assert len(audit_repo.list_recent(limit=2)) == 2


class TestAuditLogRowParsing:
    def test_metadata_already_dict(self):
        row = {
            "id": 1,
            "uuid": "abc123",
            "event_type": "test",
            "actor_id": 1,
            "actor_username": "alice",
            "source": "web",
            "entity_type": "user",
            "entity_id": 10,
            "entity_uuid": "",
            "previous_state": None,
            "new_state": None,
            "metadata": {"already": "parsed"},
            "created_at": None,
        }
        result = SQLAlchemyAuditLogRepository._row_to_audit_log(row)
        assert result.metadata == {"already": "parsed"}

    def test_null_metadata_becomes_empty_dict(self):
        row = {
            "id": 2,
            "uuid": "def456",
            "event_type": "test",
            "actor_id": None,
            "actor_username": "",
            "source": "cli",
            "entity_type": "",
            "entity_id": None,
            "entity_uuid": "",
            "previous_state": '{"role": "user"}',
            "new_state": None,
            "metadata": None,
            "created_at": None,
        }
        result = SQLAlchemyAuditLogRepository._row_to_audit_log(row)
        assert result.metadata == {}
        assert result.previous_state == {"role": "user"}
