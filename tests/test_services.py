"""
Direct service-layer tests: business rules exercised without HTTP.

Each test calls the service functions with a database session, covering
uniqueness, soft deletion, update/patch semantics, pagination and search.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ErrorKind, ServiceError
from app.models import Post, User
from app.schemas import AddressIn, CompanyIn, Geo, PostCreate, PostReplace, UserCreate
from app.services import post_service, user_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _create_user(
    db: AsyncSession,
    username: str = "svcuser",
    email: str = "svc@example.com",
    name: str = "Service User",
    **extra,
) -> dict:
    return await user_service.create_user(
        db, UserCreate(name=name, username=username, email=email, **extra)
    )


async def _create_post(db: AsyncSession, title: str, user_id: int, body: str = "Body") -> dict:
    return await post_service.create_post(db, PostCreate(title=title, body=body, user_id=user_id))


def _full_address() -> AddressIn:
    return AddressIn(
        street="Kulas Light",
        suite="Apt. 556",
        city="Gwenborough",
        zipcode="92998-3874",
        geo=Geo(lat="-37.3159", lng="81.1496"),
    )


def _full_company() -> CompanyIn:
    return CompanyIn(
        name="Romaguera-Crona",
        catch_phrase="Multi-layered client-server neural-net",
        bs="harness real-time e-markets",
    )


# ---------------------------------------------------------------------------
# user_service: create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user_minimal(db_session: AsyncSession):
    user = await _create_user(db_session)
    assert user["username"] == "svcuser"
    assert user["email"] == "svc@example.com"
    assert user["address"] is None
    assert user["company"] is None
    assert "password" not in user

    row = await db_session.get(User, user["id"])
    assert row.password == ""
    assert row.deleted is False


@pytest.mark.asyncio
async def test_create_user_with_address_and_company(db_session: AsyncSession):
    user = await _create_user(
        db_session, address=_full_address(), company=_full_company(), phone="1-770-736-8031"
    )
    assert user["address"] == {
        "street": "Kulas Light",
        "suite": "Apt. 556",
        "city": "Gwenborough",
        "zipcode": "92998-3874",
        "geo": {"lat": "-37.3159", "lng": "81.1496"},
    }
    assert user["company"] == {
        "name": "Romaguera-Crona",
        "catchPhrase": "Multi-layered client-server neural-net",
        "bs": "harness real-time e-markets",
    }
    assert user["phone"] == "1-770-736-8031"


@pytest.mark.asyncio
async def test_create_user_keeps_password(db_session: AsyncSession):
    user = await _create_user(db_session, password="s3cret")
    row = await db_session.get(User, user["id"])
    assert row.password == "s3cret"


@pytest.mark.asyncio
async def test_create_user_duplicate_email(db_session: AsyncSession):
    await _create_user(db_session, username="first", email="same@example.com")
    with pytest.raises(ServiceError) as exc_info:
        await _create_user(db_session, username="second", email="same@example.com")
    assert exc_info.value.kind is ErrorKind.DUPLICATE_USER
    assert exc_info.value.message == "Email or username already exists"


@pytest.mark.asyncio
async def test_create_user_duplicate_username(db_session: AsyncSession):
    await _create_user(db_session, username="taken", email="one@example.com")
    with pytest.raises(ServiceError) as exc_info:
        await _create_user(db_session, username="taken", email="two@example.com")
    assert exc_info.value.kind is ErrorKind.DUPLICATE_USER


@pytest.mark.asyncio
async def test_create_user_duplicate_of_deleted_user(db_session: AsyncSession):
    """Soft-deleted users still hold their email and username."""
    user = await _create_user(db_session, username="ghost", email="ghost@example.com")
    await user_service.delete_user(db_session, user["id"])
    with pytest.raises(ServiceError) as exc_info:
        await _create_user(db_session, username="ghost", email="other@example.com")
    assert exc_info.value.kind is ErrorKind.DUPLICATE_USER


# ---------------------------------------------------------------------------
# user_service: read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_user_not_found(db_session: AsyncSession):
    assert await user_service.get_user(db_session, 99999) is None


@pytest.mark.asyncio
async def test_get_user_includes_nested(db_session: AsyncSession):
    created = await _create_user(db_session, address=_full_address(), company=_full_company())
    fetched = await user_service.get_user(db_session, created["id"])
    assert fetched == created


@pytest.mark.asyncio
async def test_get_users_ordered_and_active_only(db_session: AsyncSession):
    a = await _create_user(db_session, username="a", email="a@example.com")
    b = await _create_user(db_session, username="b", email="b@example.com")
    c = await _create_user(db_session, username="c", email="c@example.com")
    await user_service.delete_user(db_session, b["id"])

    users = await user_service.get_users(db_session)
    assert [u["id"] for u in users] == [a["id"], c["id"]]


# ---------------------------------------------------------------------------
# user_service: soft delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_user_is_soft(db_session: AsyncSession):
    user = await _create_user(db_session)
    await user_service.delete_user(db_session, user["id"])

    # Still addressable by id.
    assert await user_service.get_user(db_session, user["id"]) is not None
    row = await db_session.get(User, user["id"])
    assert row.deleted is True
    assert user["id"] not in [u["id"] for u in await user_service.get_users(db_session)]


@pytest.mark.asyncio
async def test_delete_user_twice_restamps(db_session: AsyncSession):
    user = await _create_user(db_session)
    await user_service.delete_user(db_session, user["id"])
    row = await db_session.get(User, user["id"])
    # SQLite hands the stamp back without tzinfo; compare as naive UTC.
    first_stamp = row.updated_at.replace(tzinfo=None)

    await user_service.delete_user(db_session, user["id"])
    assert row.deleted is True
    assert row.updated_at.replace(tzinfo=None) >= first_stamp


@pytest.mark.asyncio
async def test_delete_user_not_found(db_session: AsyncSession):
    with pytest.raises(ServiceError) as exc_info:
        await user_service.delete_user(db_session, 99999)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


# ---------------------------------------------------------------------------
# user_service: update / patch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_user_fields_and_nested(db_session: AsyncSession):
    user = await _create_user(db_session, address=_full_address(), company=_full_company())
    updated = await user_service.update_user(
        db_session,
        user["id"],
        {"name": "Renamed", "website": "renamed.org"},
        {"city": "Wisokyburgh", "geo": {"lat": "-43.9509"}},
        {"bs": "synergize scalable supply-chains"},
    )
    assert updated["name"] == "Renamed"
    assert updated["website"] == "renamed.org"
    assert updated["address"]["city"] == "Wisokyburgh"
    assert updated["address"]["street"] == "Kulas Light"
    assert updated["address"]["geo"] == {"lat": "-43.9509", "lng": "81.1496"}
    assert updated["company"]["bs"] == "synergize scalable supply-chains"
    assert updated["company"]["name"] == "Romaguera-Crona"


@pytest.mark.asyncio
async def test_update_user_without_address_fails(db_session: AsyncSession):
    """Nested records are updated, never created."""
    user = await _create_user(db_session)
    with pytest.raises(ServiceError) as exc_info:
        await user_service.update_user(db_session, user["id"], {}, {"city": "Nowhere"})
    assert exc_info.value.kind is ErrorKind.UPDATE_FAILED
    assert exc_info.value.message == "Failed to update user"


@pytest.mark.asyncio
async def test_update_user_not_found(db_session: AsyncSession):
    with pytest.raises(ServiceError) as exc_info:
        await user_service.update_user(db_session, 99999, {"name": "Nobody"})
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_update_user_to_taken_email(db_session: AsyncSession):
    await _create_user(db_session, username="holder", email="holder@example.com")
    other = await _create_user(db_session, username="other", email="other@example.com")
    with pytest.raises(ServiceError) as exc_info:
        await user_service.update_user(db_session, other["id"], {"email": "holder@example.com"})
    assert exc_info.value.kind is ErrorKind.DUPLICATE_USER


@pytest.mark.asyncio
async def test_update_user_keeping_own_email(db_session: AsyncSession):
    user = await _create_user(db_session)
    updated = await user_service.update_user(
        db_session, user["id"], {"email": "svc@example.com", "name": "Same Email"}
    )
    assert updated["name"] == "Same Email"


@pytest.mark.asyncio
async def test_patch_user_partial(db_session: AsyncSession):
    user = await _create_user(db_session, phone="555-0100", address=_full_address())
    patched = await user_service.patch_user(db_session, user["id"], {"name": "Patched"})
    assert patched["name"] == "Patched"
    assert patched["phone"] == "555-0100"
    assert patched["address"] == user["address"]


@pytest.mark.asyncio
async def test_patch_user_ignores_storage_only_fields(db_session: AsyncSession):
    user = await _create_user(db_session)
    await user_service.patch_user(db_session, user["id"], {"deleted": True, "id": 42})
    row = await db_session.get(User, user["id"])
    assert row.deleted is False
    assert row.id == user["id"]


@pytest.mark.asyncio
async def test_patch_user_not_found(db_session: AsyncSession):
    with pytest.raises(ServiceError) as exc_info:
        await user_service.patch_user(db_session, 99999, {"name": "Nobody"})
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_patch_user_null_required_field(db_session: AsyncSession):
    user = await _create_user(db_session)
    with pytest.raises(ServiceError) as exc_info:
        await user_service.patch_user(db_session, user["id"], {"name": None})
    assert exc_info.value.kind is ErrorKind.VALIDATION


# ---------------------------------------------------------------------------
# user_service: search
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_users_matches_email_name_username(db_session: AsyncSession):
    by_email = await _create_user(db_session, username="u1", email="john@x.com", name="Alpha")
    by_name = await _create_user(db_session, username="u2", email="b@x.com", name="John Smith")
    by_username = await _create_user(db_session, username="john99", email="c@x.com", name="Gamma")
    await _create_user(db_session, username="alice", email="alice@x.com", name="Alice")

    found = await user_service.search_users(db_session, "john")
    assert {u["id"] for u in found} == {by_email["id"], by_name["id"], by_username["id"]}


@pytest.mark.asyncio
async def test_search_users_includes_deleted(db_session: AsyncSession):
    user = await _create_user(db_session, username="gone", email="gone@example.com")
    await user_service.delete_user(db_session, user["id"])
    found = await user_service.search_users(db_session, "gone")
    assert [u["id"] for u in found] == [user["id"]]


@pytest.mark.asyncio
async def test_search_users_wildcards_are_literal(db_session: AsyncSession):
    await _create_user(db_session, username="plain", email="plain@example.com")
    assert await user_service.search_users(db_session, "%") == []
    assert await user_service.search_users(db_session, "_") == []


@pytest.mark.asyncio
async def test_search_users_requires_keyword(db_session: AsyncSession):
    with pytest.raises(ServiceError) as exc_info:
        await user_service.search_users(db_session, "")
    assert exc_info.value.kind is ErrorKind.VALIDATION


# ---------------------------------------------------------------------------
# post_service: create / read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_post(db_session: AsyncSession):
    user = await _create_user(db_session)
    post = await _create_post(db_session, "Hello", user["id"], body="World")
    assert post == {"userId": user["id"], "id": post["id"], "title": "Hello", "body": "World"}


@pytest.mark.asyncio
async def test_create_post_duplicate_title(db_session: AsyncSession):
    user = await _create_user(db_session)
    await _create_post(db_session, "X", user["id"])
    with pytest.raises(ServiceError) as exc_info:
        await _create_post(db_session, "X", user["id"])
    assert exc_info.value.kind is ErrorKind.DUPLICATE_TITLE
    assert exc_info.value.message == "Title already exists"


@pytest.mark.asyncio
async def test_create_posts_distinct_titles(db_session: AsyncSession):
    user = await _create_user(db_session)
    x = await _create_post(db_session, "X", user["id"])
    y = await _create_post(db_session, "Y", user["id"])
    assert x["id"] != y["id"]


@pytest.mark.asyncio
async def test_create_post_requires_body(db_session: AsyncSession):
    with pytest.raises(ServiceError) as exc_info:
        await _create_post(db_session, "No body", 1, body="")
    assert exc_info.value.kind is ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_create_post_for_deleted_user(db_session: AsyncSession):
    """A post may reference a soft-deleted author."""
    user = await _create_user(db_session)
    await user_service.delete_user(db_session, user["id"])
    post = await _create_post(db_session, "Orphaned", user["id"])
    assert post["userId"] == user["id"]


@pytest.mark.asyncio
async def test_get_post(db_session: AsyncSession):
    user = await _create_user(db_session)
    created = await _create_post(db_session, "Readable", user["id"])
    assert await post_service.get_post(db_session, created["id"]) == created
    assert await post_service.get_post(db_session, 99999) is None


# ---------------------------------------------------------------------------
# post_service: replace / patch / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_replace_post_overwrites_everything(db_session: AsyncSession):
    author = await _create_user(db_session)
    new_author = await _create_user(db_session, username="new", email="new@example.com")
    post = await _create_post(db_session, "Original", author["id"], body="Old body")

    replaced = await post_service.replace_post(
        db_session,
        post["id"],
        PostReplace(title="Replaced", body="New body", user_id=new_author["id"]),
    )
    assert replaced == {
        "userId": new_author["id"],
        "id": post["id"],
        "title": "Replaced",
        "body": "New body",
    }


@pytest.mark.asyncio
async def test_patch_post_merges(db_session: AsyncSession):
    user = await _create_user(db_session)
    post = await _create_post(db_session, "Before", user["id"], body="Kept body")
    patched = await post_service.patch_post(db_session, post["id"], {"title": "After"})
    assert patched["title"] == "After"
    assert patched["body"] == "Kept body"
    assert patched["userId"] == user["id"]


@pytest.mark.asyncio
async def test_patch_post_same_title_is_allowed(db_session: AsyncSession):
    user = await _create_user(db_session)
    post = await _create_post(db_session, "Stable", user["id"])
    patched = await post_service.patch_post(db_session, post["id"], {"title": "Stable", "body": "Edited"})
    assert patched["body"] == "Edited"


@pytest.mark.asyncio
async def test_patch_post_to_taken_title(db_session: AsyncSession):
    user = await _create_user(db_session)
    await _create_post(db_session, "Taken", user["id"])
    other = await _create_post(db_session, "Other", user["id"])
    with pytest.raises(ServiceError) as exc_info:
        await post_service.patch_post(db_session, other["id"], {"title": "Taken"})
    assert exc_info.value.kind is ErrorKind.DUPLICATE_TITLE


@pytest.mark.asyncio
async def test_patch_post_null_field(db_session: AsyncSession):
    user = await _create_user(db_session)
    post = await _create_post(db_session, "Nullable?", user["id"])
    with pytest.raises(ServiceError) as exc_info:
        await post_service.patch_post(db_session, post["id"], {"body": None})
    assert exc_info.value.kind is ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_write_missing_post(db_session: AsyncSession):
    with pytest.raises(ServiceError) as exc_info:
        await post_service.patch_post(db_session, 99999, {"title": "Ghost"})
    assert exc_info.value.kind is ErrorKind.NOT_FOUND

    with pytest.raises(ServiceError) as exc_info:
        await post_service.replace_post(
            db_session, 99999, PostReplace(title="Ghost", body="B", user_id=1)
        )
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_post_is_hard(db_session: AsyncSession):
    user = await _create_user(db_session)
    post = await _create_post(db_session, "Doomed", user["id"])
    await post_service.delete_post(db_session, post["id"])

    assert await post_service.get_post(db_session, post["id"]) is None
    count = (await db_session.execute(select(func.count()).select_from(Post))).scalar_one()
    assert count == 0

    with pytest.raises(ServiceError) as exc_info:
        await post_service.delete_post(db_session, post["id"])
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


# ---------------------------------------------------------------------------
# post_service: pagination / search
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_posts_pages(db_session: AsyncSession):
    user = await _create_user(db_session)
    for i in range(1, 26):
        await _create_post(db_session, f"Post {i}", user["id"])

    page2 = await post_service.get_posts(db_session, page=2, limit=10)
    assert [p["title"] for p in page2] == [f"Post {i}" for i in range(11, 21)]

    page3 = await post_service.get_posts(db_session, page=3, limit=10)
    assert len(page3) == 5

    assert await post_service.get_posts(db_session, page=4, limit=10) == []


@pytest.mark.asyncio
async def test_get_posts_default_page_size(db_session: AsyncSession):
    user = await _create_user(db_session)
    for i in range(25):
        await _create_post(db_session, f"Default {i}", user["id"])
    assert len(await post_service.get_posts(db_session)) == 20


@pytest.mark.asyncio
async def test_get_posts_clamps_bounds(db_session: AsyncSession):
    user = await _create_user(db_session)
    for i in range(3):
        await _create_post(db_session, f"Clamp {i}", user["id"])

    first = await post_service.get_posts(db_session, page=0, limit=2)
    negative = await post_service.get_posts(db_session, page=-5, limit=2)
    assert first == negative
    assert [p["title"] for p in first] == ["Clamp 0", "Clamp 1"]

    assert len(await post_service.get_posts(db_session, page=1, limit=0)) == 1
    assert len(await post_service.get_posts(db_session, page=1, limit=10_000)) == 3


@pytest.mark.asyncio
async def test_search_posts(db_session: AsyncSession):
    user = await _create_user(db_session)
    await _create_post(db_session, "Python tips", user["id"])
    await _create_post(db_session, "More python", user["id"])
    await _create_post(db_session, "Rust notes", user["id"])

    found = await post_service.search_posts(db_session, "python")
    assert sorted(p["title"] for p in found) == ["More python", "Python tips"]
    assert await post_service.search_posts(db_session, "golang") == []


@pytest.mark.asyncio
async def test_search_posts_requires_keyword(db_session: AsyncSession):
    with pytest.raises(ServiceError) as exc_info:
        await post_service.search_posts(db_session, "")
    assert exc_info.value.kind is ErrorKind.VALIDATION
