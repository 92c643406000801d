from __future__ import annotations

import pytest

pytestmark = pytest.mark.asyncio


async def test_me_lists_effective_permissions(async_client, users, auth_headers) -> None:
    response = await async_client.get("/users/me", headers=auth_headers(users.viewer))
    assert response.status_code == 200
    body = response.json()
    assert body["roles"] == ["viewer"]
    assert body["permissions"] == ["read_comments", "read_posts"]


async def test_bad_token_is_rejected(async_client) -> None:
    response = await async_client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


async def test_listing_users_needs_read_users(async_client, users, auth_headers) -> None:
    assert (await async_client.get("/users", headers=auth_headers(users.editor))).status_code == 403
    response = await async_client.get("/users", headers=auth_headers(users.admin))
    assert response.json()["total"] == 5


async def test_user_may_update_own_profile_only(async_client, users, auth_headers) -> None:
    author = auth_headers(users.author)
    denied = await async_client.patch(f"/users/{users.viewer}", json={"name": "x"}, headers=author)
    assert denied.status_code == 403

    own = await async_client.patch(f"/users/{users.author}", json={"name": "Renamed"}, headers=author)
    # authors hold no update_users
    assert own.status_code == 403

    admin = await async_client.patch(
        f"/users/{users.author}", json={"email": "viewer@example.com"}, headers=auth_headers(users.admin)
    )
    assert admin.status_code == 409


async def test_admin_cannot_delete_own_account(async_client, users, auth_headers) -> None:
    admin = auth_headers(users.admin)
    response = await async_client.delete(f"/users/{users.admin}", headers=admin)
    assert response.status_code == 403
    assert response.json()["reason"] == "self_deletion"


async def test_deleting_user_evicts_their_posts(async_client, users, auth_headers) -> None:
    post = await async_client.post(
        "/posts", json={"title": "Short lived", "body": "b", "status": "published"},
        headers=auth_headers(users.other_author),
    )
    post_id = post.json()["id"]
    assert (await async_client.get(f"/posts/{post_id}")).status_code == 200

    deleted = await async_client.delete(f"/users/{users.other_author}", headers=auth_headers(users.admin))
    assert deleted.json() == {"message": "User deleted successfully"}
    assert (await async_client.get(f"/posts/{post_id}")).status_code == 404
    assert (await async_client.get("/users/me", headers=auth_headers(users.other_author))).status_code == 401
