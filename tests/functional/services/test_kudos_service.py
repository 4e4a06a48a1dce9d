# tests/functional/services/test_kudos_service.py
from datetime import datetime, timezone

import pytest
from pymongo.errors import DuplicateKeyError
from pytest_mock import MockerFixture

from app.core.exceptions import AuthenticationFailure, AuthorizationFailure, NotFound, ValidationFailure
from app.core.identity import Identity
from app.models.kudos import DRY_RUN_KUDOS_ID, Kudos, KudosCreateRequest, VisibilityUpdateRequest
from app.models.user import User
from app.services.kudos_service import MAX_PAGE, KudosService, clamp_paging

NEW_USER_ID = "65f1a2b3c4d5e6f708192aaa"
NEW_KUDOS_ID = "65f1a2b3c4d5e6f708192bbb"
KUDOS_ID = "65f1a2b3c4d5e6f708192ccc"

CRUD = "app.services.kudos_service.crud"

pytestmark = pytest.mark.asyncio


@pytest.fixture
def existing_kudos(recipient: User) -> Kudos:
    return Kudos(
        id=KUDOS_ID,
        to_user_id=recipient.id,
        to_user_name=recipient.name,
        to_user_team=recipient.team,
        from_user_id=NEW_USER_ID,
        from_user_name="New Person",
        from_user_team="Unassigned",
        message="Nice work!",
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def crud_mocks(mocker: MockerFixture, recipient: User, existing_kudos: Kudos):
    """Store functions as seen from the service module."""
    return {
        "get_user_by_external_id": mocker.patch(f"{CRUD}.get_user_by_external_id", return_value=None),
        "create_user": mocker.patch(
            f"{CRUD}.create_user", side_effect=lambda user_in: User(id=NEW_USER_ID, **user_in.model_dump())
        ),
        "get_user_by_id": mocker.patch(f"{CRUD}.get_user_by_id", return_value=recipient),
        "create_kudos": mocker.patch(
            f"{CRUD}.create_kudos", side_effect=lambda kudos_in: Kudos(id=NEW_KUDOS_ID, **kudos_in.model_dump())
        ),
        "count_kudos": mocker.patch(f"{CRUD}.count_kudos", return_value=1),
        "find_kudos": mocker.patch(f"{CRUD}.find_kudos", return_value=[existing_kudos]),
        "get_kudos_by_id": mocker.patch(f"{CRUD}.get_kudos_by_id", return_value=existing_kudos),
        "update_kudos_moderation": mocker.patch(f"{CRUD}.update_kudos_moderation", return_value=existing_kudos),
        "delete_kudos": mocker.patch(f"{CRUD}.delete_kudos", return_value=True),
    }


def assert_no_writes(crud_mocks):
    for name in ("create_user", "create_kudos", "update_kudos_moderation", "delete_kudos"):
        crud_mocks[name].assert_not_called()


# --- Paging ---

@pytest.mark.parametrize("page, page_size, expected", [
    (None, None, (1, 12)),
    (0, 0, (1, 1)),
    (-3, -10, (1, 1)),
    (5, 101, (5, 100)),
    (2, 100, (2, 100)),
    (1, 1, (1, 1)),
    (MAX_PAGE, 12, (MAX_PAGE, 12)),
    (10**19, 100, (MAX_PAGE, 100)),
])
async def test_clamp_paging(page, page_size, expected):
    assert clamp_paging(page, page_size) == expected


# --- List ---

async def test_list_hides_invisible_for_members(crud_mocks, member: Identity):
    page = await KudosService().list_kudos(member, page=3, page_size=500, team="Engineering", search=" nice ")

    query = crud_mocks["count_kudos"].call_args.args[0]
    assert query["isVisible"] == {"$ne": False}
    assert query["toUserTeam"] == "Engineering"
    assert "$or" in query
    crud_mocks["find_kudos"].assert_awaited_once_with(query, skip=200, limit=100)
    assert (page.page, page.page_size, page.total, page.dry_run) == (3, 100, 1, False)
    assert page.items[0].id == KUDOS_ID


async def test_list_includes_hidden_for_admins(crud_mocks, admin: Identity):
    await KudosService().list_kudos(admin, to_user_id="r1", from_user_id="s1")

    query = crud_mocks["count_kudos"].call_args.args[0]
    assert "isVisible" not in query
    assert query["toUserId"] == "r1"
    assert query["fromUserId"] == "s1"


async def test_list_echoes_dry_run(crud_mocks, member: Identity):
    page = await KudosService(dry_run=True).list_kudos(member)
    assert page.dry_run is True
    assert (page.page, page.page_size) == (1, 12)


# --- Create ---

async def test_create_accepts_240_characters(crud_mocks, member: Identity, recipient: User):
    kudos = await KudosService().create_kudos(KudosCreateRequest(to_user_id=recipient.id, message="x" * 240), member)
    assert kudos.id == NEW_KUDOS_ID
    assert len(kudos.message) == 240


async def test_create_rejects_241_characters(crud_mocks, member: Identity, recipient: User):
    with pytest.raises(ValidationFailure):
        await KudosService().create_kudos(KudosCreateRequest(to_user_id=recipient.id, message="x" * 241), member)
    assert_no_writes(crud_mocks)
    crud_mocks["get_user_by_external_id"].assert_not_called()


async def test_create_measures_length_after_trim(crud_mocks, member: Identity, recipient: User):
    kudos = await KudosService().create_kudos(
        KudosCreateRequest(to_user_id=recipient.id, message="   " + "y" * 240 + "  "), member
    )
    assert kudos.message == "y" * 240


@pytest.mark.parametrize("to_user_id, message", [
    ("", "Nice work!"),
    ("   ", "Nice work!"),
    (None, "Nice work!"),
    ("65f1a2b3c4d5e6f708192a3b", ""),
    ("65f1a2b3c4d5e6f708192a3b", "   \n\t"),
    ("65f1a2b3c4d5e6f708192a3b", None),
])
async def test_create_requires_recipient_and_message(crud_mocks, member: Identity, to_user_id, message):
    with pytest.raises(ValidationFailure):
        await KudosService().create_kudos(KudosCreateRequest(to_user_id=to_user_id, message=message), member)
    assert_no_writes(crud_mocks)


async def test_create_requires_external_identity(crud_mocks, recipient: User):
    anonymous = Identity(external_id="", display_name="Unknown User", email="", is_admin=False)
    with pytest.raises(AuthenticationFailure):
        await KudosService().create_kudos(KudosCreateRequest(to_user_id=recipient.id, message="Hi"), anonymous)
    assert_no_writes(crud_mocks)


async def test_first_time_sender_gets_user_record(crud_mocks, member: Identity, recipient: User):
    kudos = await KudosService().create_kudos(
        KudosCreateRequest(to_user_id=recipient.id, message="  Nice work!  "), member
    )

    crud_mocks["create_user"].assert_awaited_once()
    new_user = crud_mocks["create_user"].call_args.args[0]
    assert (new_user.name, new_user.team, new_user.external_id) == ("New Person", "Unassigned", "u1")

    assert kudos.from_user_id == NEW_USER_ID
    assert kudos.from_user_name == "New Person"
    assert kudos.from_user_team == "Unassigned"
    assert kudos.to_user_id == recipient.id
    assert kudos.to_user_name == "Avery Johnson"
    assert kudos.to_user_team == "Engineering"
    assert kudos.message == "Nice work!"
    assert kudos.is_visible is True
    assert kudos.created_at.tzinfo is not None


async def test_known_sender_is_reused(crud_mocks, member: Identity, recipient: User):
    crud_mocks["get_user_by_external_id"].return_value = User(id="known", name="Jordan Lee", team="Product", external_id="u1")

    kudos = await KudosService().create_kudos(KudosCreateRequest(to_user_id=recipient.id, message="Thanks"), member)

    crud_mocks["create_user"].assert_not_called()
    assert (kudos.from_user_id, kudos.from_user_name, kudos.from_user_team) == ("known", "Jordan Lee", "Product")


async def test_concurrently_created_sender_is_reused(crud_mocks, member: Identity, recipient: User):
    winner = User(id="winner", name="New Person", team="Unassigned", external_id="u1")
    crud_mocks["get_user_by_external_id"].side_effect = [None, winner]
    crud_mocks["create_user"].side_effect = DuplicateKeyError("E11000 duplicate key error: user_external_id_unique")

    kudos = await KudosService().create_kudos(KudosCreateRequest(to_user_id=recipient.id, message="Thanks"), member)

    assert kudos.from_user_id == "winner"
    assert crud_mocks["get_user_by_external_id"].await_count == 2
    crud_mocks["create_kudos"].assert_awaited_once()


async def test_duplicate_sender_without_record_propagates(crud_mocks, member: Identity, recipient: User):
    crud_mocks["create_user"].side_effect = DuplicateKeyError("E11000 duplicate key error")

    with pytest.raises(DuplicateKeyError):
        await KudosService().create_kudos(KudosCreateRequest(to_user_id=recipient.id, message="Thanks"), member)
    crud_mocks["create_kudos"].assert_not_called()


async def test_blank_sender_name_falls_back_to_email(crud_mocks, member: Identity, recipient: User):
    crud_mocks["get_user_by_external_id"].return_value = User(id="known", name=" ", team="Data", external_id="u1")

    kudos = await KudosService().create_kudos(KudosCreateRequest(to_user_id=recipient.id, message="Thanks"), member)

    assert kudos.from_user_name == "new.person@contoso.com"


async def test_unknown_recipient_is_not_found(crud_mocks, member: Identity):
    crud_mocks["get_user_by_id"].return_value = None
    with pytest.raises(NotFound):
        await KudosService().create_kudos(KudosCreateRequest(to_user_id="missing", message="Thanks"), member)
    crud_mocks["create_kudos"].assert_not_called()


async def test_dry_run_create_writes_nothing(crud_mocks, member: Identity, recipient: User):
    kudos = await KudosService(dry_run=True).create_kudos(
        KudosCreateRequest(to_user_id=recipient.id, message="Thanks for the help!"), member
    )

    assert_no_writes(crud_mocks)
    crud_mocks["get_user_by_id"].assert_awaited_once_with(recipient.id)
    assert kudos.id == DRY_RUN_KUDOS_ID
    # Unsaved sender takes its external id as id
    assert kudos.from_user_id == "u1"
    assert kudos.from_user_team == "Unassigned"


# --- Moderate ---

async def test_member_cannot_moderate(crud_mocks, member: Identity):
    with pytest.raises(AuthorizationFailure):
        await KudosService().set_visibility(KUDOS_ID, VisibilityUpdateRequest(is_visible=False, reason="spam"), member)
    crud_mocks["get_kudos_by_id"].assert_not_called()
    assert_no_writes(crud_mocks)


async def test_admin_without_external_id_is_unauthenticated(crud_mocks):
    nameless_admin = Identity(external_id="", display_name="Admin", email="", is_admin=True)
    with pytest.raises(AuthenticationFailure):
        await KudosService().set_visibility(KUDOS_ID, VisibilityUpdateRequest(is_visible=False), nameless_admin)
    assert_no_writes(crud_mocks)


async def test_admin_hides_kudos(crud_mocks, admin: Identity):
    result = await KudosService().set_visibility(
        KUDOS_ID, VisibilityUpdateRequest(is_visible=False, reason="test"), admin
    )

    crud_mocks["update_kudos_moderation"].assert_awaited_once()
    _, kwargs = crud_mocks["update_kudos_moderation"].call_args
    assert kwargs["is_visible"] is False
    assert kwargs["moderated_by"] == "admin-1"
    assert kwargs["moderation_reason"] == "test"
    assert kwargs["moderated_at"] == result.moderated_at

    assert result.id == KUDOS_ID
    assert result.is_visible is False
    assert result.moderated_by == "admin-1"
    assert result.moderation_reason == "test"
    assert result.dry_run is False


async def test_missing_reason_is_stored_empty(crud_mocks, admin: Identity):
    result = await KudosService().set_visibility(KUDOS_ID, VisibilityUpdateRequest(is_visible=True, reason=None), admin)
    assert result.moderation_reason == ""
    assert crud_mocks["update_kudos_moderation"].call_args.kwargs["moderation_reason"] == ""


async def test_moderating_unknown_kudos(crud_mocks, admin: Identity):
    crud_mocks["get_kudos_by_id"].return_value = None
    with pytest.raises(NotFound):
        await KudosService().set_visibility("missing", VisibilityUpdateRequest(is_visible=False), admin)
    crud_mocks["update_kudos_moderation"].assert_not_called()


async def test_kudos_removed_before_update(crud_mocks, admin: Identity):
    crud_mocks["update_kudos_moderation"].return_value = None
    with pytest.raises(NotFound):
        await KudosService().set_visibility(KUDOS_ID, VisibilityUpdateRequest(is_visible=False), admin)


async def test_dry_run_moderation_writes_nothing(crud_mocks, admin: Identity):
    result = await KudosService(dry_run=True).set_visibility(
        KUDOS_ID, VisibilityUpdateRequest(is_visible=False, reason="test"), admin
    )
    crud_mocks["get_kudos_by_id"].assert_awaited_once_with(KUDOS_ID)
    assert_no_writes(crud_mocks)
    assert result.dry_run is True
    assert result.is_visible is False


# --- Delete ---

async def test_member_cannot_delete(crud_mocks, member: Identity):
    with pytest.raises(AuthorizationFailure):
        await KudosService().delete_kudos(KUDOS_ID, member)
    assert_no_writes(crud_mocks)


async def test_admin_deletes(crud_mocks, admin: Identity):
    result = await KudosService().delete_kudos(KUDOS_ID, admin)
    crud_mocks["delete_kudos"].assert_awaited_once_with(KUDOS_ID)
    assert (result.id, result.deleted, result.dry_run) == (KUDOS_ID, True, False)


async def test_delete_unknown_kudos(crud_mocks, admin: Identity):
    crud_mocks["get_kudos_by_id"].return_value = None
    with pytest.raises(NotFound):
        await KudosService().delete_kudos("missing", admin)
    crud_mocks["delete_kudos"].assert_not_called()


async def test_dry_run_delete_writes_nothing(crud_mocks, admin: Identity):
    result = await KudosService(dry_run=True).delete_kudos(KUDOS_ID, admin)
    assert_no_writes(crud_mocks)
    assert result.deleted is True
    assert result.dry_run is True
