# tests/test_auth.py

import asyncio

import httpx
import pytest

from taskhub.auth.security import create_jwt_token, verify_jwt_token
from taskhub.auth.services import AuthService, MailService
from taskhub.errors import (
    AlreadyExists, AuthRequired, InvalidInput, NotFound, OperationInProgress, PermissionDenied,
    ProviderError,
)
from taskhub.stores import Stores

PASSWORD = "correct-horse"


def test_register_signs_in(alice: Stores) -> None:
    user = alice.session.current_user
    assert user.email == "alice@example.com"
    assert user.display_name == "Alice"
    assert alice.session.token
    assert verify_jwt_token(alice.session.token, alice.backend.settings)["user_id"] == user.id


def test_duplicate_email_is_rejected(alice: Stores, make_stores) -> None:
    other = make_stores()
    with pytest.raises(AlreadyExists):
        other.session.register("ALICE@example.com", PASSWORD, "Impostor")
    assert other.session.current_user is None
    assert other.session.error == "An account with this email already exists"


def test_registration_validation(make_stores) -> None:
    stores = make_stores()
    with pytest.raises(InvalidInput):
        stores.session.register("dave@example.com", "123", "Dave")
    with pytest.raises(InvalidInput):
        stores.session.register("dave@example.com", PASSWORD, "   ")


def test_login_and_logout(alice: Stores, make_stores) -> None:
    again = make_stores()
    user = again.session.login("alice@example.com", PASSWORD)
    assert user.id == alice.session.user_id

    again.session.logout()
    assert again.session.current_user is None
    assert again.session.token is None
    with pytest.raises(AuthRequired):
        again.session.logout()


def test_wrong_password(alice: Stores, make_stores) -> None:
    stores = make_stores()
    with pytest.raises(PermissionDenied):
        stores.session.login("alice@example.com", "not-the-password")
    assert stores.session.error == "Invalid email or password"


def test_restore_session_from_token(alice: Stores, make_stores) -> None:
    restored = make_stores()
    user = restored.session.restore(alice.session.token)
    assert user.id == alice.session.user_id

    with pytest.raises(AuthRequired):
        make_stores().session.restore("garbage-token-value")


def test_reset_tokens_are_not_access_tokens(alice: Stores) -> None:
    settings = alice.backend.settings
    reset = create_jwt_token(alice.session.user_id, settings, token_type="reset")
    with pytest.raises(AuthRequired):
        verify_jwt_token(reset, settings)


def test_password_reset_flow(alice: Stores, make_stores, sent_mail) -> None:
    asyncio.run(alice.session.reset_password("alice@example.com"))

    [mail] = sent_mail
    assert mail["email"] == "alice@example.com"
    assert mail["url"] == "https://mail.example.com/auth/password-reset"

    alice.session.confirm_password_reset(mail["token"], "a-brand-new-secret")
    stores = make_stores()
    assert stores.session.login("alice@example.com", "a-brand-new-secret").id == alice.session.user_id


def test_password_reset_for_unknown_email_sends_nothing(make_stores, sent_mail) -> None:
    stores = make_stores()
    asyncio.run(stores.session.reset_password("nobody@example.com"))
    assert sent_mail == []
    assert stores.session.error is None


def test_bad_reset_token(alice: Stores) -> None:
    with pytest.raises(PermissionDenied):
        alice.session.confirm_password_reset(alice.session.token, "a-brand-new-secret")


def test_mail_api_failure_is_a_provider_error(alice: Stores, db) -> None:
    failing = MailService(
        alice.backend.settings,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down")),
    )
    service = AuthService(db, alice.backend.settings, failing)
    with pytest.raises(ProviderError):
        asyncio.run(service.send_password_reset_email("alice@example.com"))


def test_concurrent_reset_requests_are_refused(alice: Stores, settings) -> None:
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.05)
        return httpx.Response(202)

    alice.session.mail_service = MailService(settings, transport=httpx.MockTransport(slow))

    async def twice():
        return await asyncio.gather(
            alice.session.reset_password("alice@example.com"),
            alice.session.reset_password("alice@example.com"),
            return_exceptions=True,
        )

    first, second = asyncio.run(twice())
    assert first is None
    assert isinstance(second, OperationInProgress)


def test_update_profile_notifies_listeners(alice: Stores) -> None:
    seen = []
    alice.session.subscribe(lambda store: seen.append(store.current_user.display_name))

    user = alice.session.update_profile("Alice B.")
    assert user.display_name == "Alice B."
    assert seen[-1] == "Alice B."


def test_avatar_upload_updates_photo(alice: Stores, bob: Stores) -> None:
    url = alice.session.upload_avatar("avatar.png", b"\x89PNG fake")
    assert url == f"/storage/{alice.session.user_id}/avatar.png"
    assert alice.session.current_user.photo_url == url

    profile = bob.session.get_user_profile(alice.session.user_id)
    assert profile.photo_url == url
    assert bob.backend.storage.read(bob.session.user_id, alice.session.user_id, "avatar.png") == b"\x89PNG fake"


def test_unknown_profile(alice: Stores) -> None:
    with pytest.raises(NotFound):
        alice.session.get_user_profile("no-such-user")


def test_contacts_are_channel_mates(alice: Stores, bob: Stores, carol: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    bob.channels.join_channel(channel_id)

    assert [u.display_name for u in alice.session.list_contacts()] == ["Bob"]
    assert carol.session.list_contacts() == []
