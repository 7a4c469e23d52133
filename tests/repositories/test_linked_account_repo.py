from praxis.models.linked_account import LinkedAccount
from praxis.models.user import User


def _account(user_id: int, **overrides) -> LinkedAccount:
    defaults = dict(
        user_id=user_id,
        provider="github",
        provider_subject="1001",
        provider_email="alice@users.github.com",
    )
    defaults.update(overrides)
    return LinkedAccount(**defaults)


class TestLinkedAccountRepository:
    def test_upsert_inserts(self, linked_repo, user):
        created = linked_repo.upsert(_account(user.id))
        assert created is not None
        assert created.id is not None
        assert created.provider_subject == "1001"
        assert created.created_at is not None

    def test_get_and_get_by_subject(self, linked_repo, user):
        linked_repo.upsert(_account(user.id))
        assert linked_repo.get(user.id, "github").provider_subject == "1001"
        assert linked_repo.get_by_subject("github", "1001").user_id == user.id
        assert linked_repo.get(user.id, "google") is None
        assert linked_repo.get_by_subject("github", "9999") is None

    def test_upsert_replaces_subject_for_same_provider(self, linked_repo, user):
        linked_repo.upsert(_account(user.id))
        updated = linked_repo.upsert(_account(user.id, provider_subject="2002", provider_email=None))

        assert updated.provider_subject == "2002"
        assert updated.provider_email is None
        assert len(linked_repo.list_by_user(user.id)) == 1

    def test_upsert_conflict_with_other_user_returns_none(self, linked_repo, user_repo, user):
        other = user_repo.create(User(username="bob", password_hash="hash"))
        linked_repo.upsert(_account(user.id))

        assert linked_repo.upsert(_account(other.id)) is None
        assert linked_repo.get_by_subject("github", "1001").user_id == user.id
        assert linked_repo.list_by_user(other.id) == []

    def test_list_by_user_sorted_by_provider(self, linked_repo, user):
        linked_repo.upsert(_account(user.id, provider="google", provider_subject="g-1"))
        linked_repo.upsert(_account(user.id))
        assert [a.provider for a in linked_repo.list_by_user(user.id)] == ["github", "google"]

    def test_delete_keeping_login_method(self, linked_repo, user):
        linked_repo.upsert(_account(user.id))
        assert linked_repo.delete_keeping_login_method(user.id, "github") is True
        assert linked_repo.get(user.id, "github") is None

    def test_delete_last_login_method_refused(self, linked_repo, user_repo):
        owner = user_repo.create(User(username="github-only", password_hash=None))
        linked_repo.upsert(_account(owner.id))

        assert linked_repo.delete_keeping_login_method(owner.id, "github") is False
        assert linked_repo.get(owner.id, "github") is not None
