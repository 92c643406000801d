from __future__ import annotations

import pytest

pytestmark = pytest.mark.asyncio


async def _published_post(client, headers) -> int:
    response = await client.post(
        "/posts", json={"title": "Open thread", "body": "b", "status": "published"}, headers=headers
    )
    return response.json()["id"]


async def test_comment_ownership(async_client, users, auth_headers) -> None:
    author = auth_headers(users.author)
    post_id = await _published_post(async_client, author)
    created = await async_client.post(f"/posts/{post_id}/comments", json={"body": "mine"}, headers=author)
    comment_id = created.json()["id"]

    other = auth_headers(users.other_author)
    denied = await async_client.patch(f"/comments/{comment_id}", json={"body": "theirs"}, headers=other)
    assert denied.status_code == 403

    edited = await async_client.patch(f"/comments/{comment_id}", json={"body": "edited"}, headers=author)
    assert edited.json()["body"] == "edited"

    detail = await async_client.get(f"/comments/{comment_id}")
    assert detail.json()["author"]["id"] == users.author

    deleted = await async_client.delete(f"/comments/{comment_id}", headers=auth_headers(users.editor))
    assert deleted.json() == {"message": "Comment deleted successfully"}
    listing = await async_client.get(f"/posts/{post_id}/comments")
    assert listing.json()["total"] == 0


async def test_comments_on_drafts_are_hidden(async_client, users, auth_headers) -> None:
    author = auth_headers(users.author)
    draft = await async_client.post("/posts", json={"title": "Hidden", "body": "b"}, headers=author)
    post_id = draft.json()["id"]

    assert (await async_client.get(f"/posts/{post_id}/comments")).status_code == 401
    commenting = await async_client.post(
        f"/posts/{post_id}/comments", json={"body": "hi"}, headers=auth_headers(users.other_author)
    )
    assert commenting.status_code == 403


async def test_empty_comment_is_rejected(async_client, users, auth_headers) -> None:
    author = auth_headers(users.author)
    post_id = await _published_post(async_client, author)
    response = await async_client.post(f"/posts/{post_id}/comments", json={"body": ""}, headers=author)
    assert response.status_code == 422


async def test_single_comment_follows_post_visibility(async_client, users, auth_headers) -> None:
    author = auth_headers(users.author)
    draft = await async_client.post("/posts", json={"title": "Unreleased", "body": "b"}, headers=author)
    post_id = draft.json()["id"]
    created = await async_client.post(f"/posts/{post_id}/comments", json={"body": "note to self"}, headers=author)
    assert created.status_code == 201
    comment_id = created.json()["id"]

    assert (await async_client.get(f"/comments/{comment_id}")).status_code == 401
    stranger = await async_client.get(f"/comments/{comment_id}", headers=auth_headers(users.other_author))
    assert stranger.status_code == 403
    assert (await async_client.get(f"/comments/{comment_id}", headers=author)).status_code == 200

    await async_client.patch(f"/posts/{post_id}", json={"status": "published"}, headers=author)
    assert (await async_client.get(f"/comments/{comment_id}")).status_code == 200
