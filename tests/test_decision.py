from __future__ import annotations

import pytest

from blogapi.authz.decision import (
    AUTHENTICATION_REQUIRED,
    MISSING_PERMISSION,
    NO_APPLICABLE_RULE,
    NOT_OWNER,
    SELF_DELETION,
    ResourceSnapshot,
    decide,
    enforce,
)
from blogapi.authz.principal import Principal
from blogapi.authz.registry import SYSTEM_ROLES, PermissionRegistry, RoleDefinition, UnknownPermission
from blogapi.core.errors import AuthenticationRequired, AuthorizationDenied


@pytest.fixture()
def registry() -> PermissionRegistry:
    return PermissionRegistry(roles=SYSTEM_ROLES, bypass_roles=["admin", "editor"])


def _principal(user_id: int, *roles: str) -> Principal:
    return Principal(id=user_id, roles=frozenset(roles))


def _post(owner_id: int, published: bool = False) -> ResourceSnapshot:
    return ResourceSnapshot("posts", id=10, owner_id=owner_id, is_public=published)


def test_anonymous_may_view_published_post(registry) -> None:
    assert decide(registry, None, "view", "posts", _post(1, published=True))


def test_anonymous_cannot_view_draft(registry) -> None:
    decision = decide(registry, None, "view", "posts", _post(1))
    assert decision.reason == AUTHENTICATION_REQUIRED


def test_anonymous_mutation_requires_authentication(registry) -> None:
    assert decide(registry, None, "create", "posts").reason == AUTHENTICATION_REQUIRED


def test_author_updates_own_post_but_not_others(registry) -> None:
    author = _principal(2, "author")
    assert decide(registry, author, "update", "posts", _post(2))
    assert decide(registry, author, "update", "posts", _post(3)).reason == NOT_OWNER


def test_editor_bypasses_ownership(registry) -> None:
    editor = _principal(4, "editor")
    assert decide(registry, editor, "delete", "posts", _post(99))


def test_bypass_does_not_exceed_granted_permissions(registry) -> None:
    editor = _principal(4, "editor")
    target = ResourceSnapshot("users", id=7, owner_id=7)
    assert decide(registry, editor, "delete", "users", target).reason == MISSING_PERMISSION


def test_viewer_lacks_create(registry) -> None:
    viewer = _principal(5, "viewer")
    assert decide(registry, viewer, "create", "posts").reason == MISSING_PERMISSION


def test_viewer_cannot_read_drafts_of_others(registry) -> None:
    viewer = _principal(5, "viewer")
    assert decide(registry, viewer, "view", "posts", _post(1)).reason == NOT_OWNER


def test_author_reads_own_draft(registry) -> None:
    author = _principal(2, "author")
    assert decide(registry, author, "view", "posts", _post(2))


def test_admin_cannot_delete_self(registry) -> None:
    admin = _principal(1, "admin")
    own_account = ResourceSnapshot("users", id=1, owner_id=1)
    assert decide(registry, admin, "delete", "users", own_account).reason == SELF_DELETION
    other = ResourceSnapshot("users", id=2, owner_id=2)
    assert decide(registry, admin, "delete", "users", other)


def test_unenumerated_combination_fails_closed(registry) -> None:
    admin = _principal(1, "admin")
    assert decide(registry, admin, "delete", "stats").reason == NO_APPLICABLE_RULE


def test_unownable_resource_without_bypass_is_denied() -> None:
    registry = PermissionRegistry(
        roles=[RoleDefinition("curator", "", frozenset({"update_roles"}))], bypass_roles=["admin"]
    )
    curator = _principal(6, "curator")
    role = ResourceSnapshot("roles", id=3, owner_id=None, is_public=True)
    assert decide(registry, curator, "update", "roles", role).reason == NO_APPLICABLE_RULE


def test_update_without_resource_is_denied(registry) -> None:
    author = _principal(2, "author")
    assert decide(registry, author, "update", "posts").reason == NO_APPLICABLE_RULE


def test_union_of_roles_keeps_bypass(registry) -> None:
    both = _principal(8, "editor", "author")
    assert decide(registry, both, "update", "posts", _post(1))


def test_unknown_vocabulary_raises(registry) -> None:
    with pytest.raises(UnknownPermission):
        decide(registry, _principal(1, "admin"), "archive", "posts")
    with pytest.raises(UnknownPermission):
        decide(registry, _principal(1, "admin"), "view", "tags")


def test_role_change_applies_to_next_decision(registry) -> None:
    viewer = _principal(5, "viewer")
    assert not decide(registry, viewer, "create", "posts")
    registry.load([RoleDefinition("viewer", "", frozenset({"read_posts", "create_posts"}))])
    assert decide(registry, viewer, "create", "posts")


def test_enforce_maps_reasons_to_errors(registry) -> None:
    enforce(decide(registry, _principal(1, "admin"), "create", "posts"))
    with pytest.raises(AuthenticationRequired):
        enforce(decide(registry, None, "create", "posts"))
    with pytest.raises(AuthorizationDenied) as excinfo:
        enforce(decide(registry, _principal(2, "author"), "update", "posts", _post(3)))
    assert excinfo.value.reason == NOT_OWNER
    assert "author" not in str(excinfo.value)
