# tests/test_channels.py

import pytest

from taskhub.errors import (
    AlreadyMember, AuthRequired, CannotDemoteCreator, CannotRemoveCreator, CreatorCannotLeave,
    InvalidCode, InvalidInput, NotAMember, NotFound, PermissionDenied, WrongChannelType,
)
from taskhub.stores import Stores


def uid(stores: Stores) -> str:
    return stores.session.user_id


def assert_role_invariant(channel) -> None:
    assert channel.created_by in channel.admins
    assert set(channel.admins) <= set(channel.members)


def test_create_channel_makes_creator_sole_member_and_admin(alice: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat", "Chores for the flat")

    [channel] = alice.channels.joined_channels
    assert channel.id == channel_id
    assert channel.members == [uid(alice)]
    assert channel.admins == [uid(alice)]
    assert channel.invite_code is None
    assert_role_invariant(channel)


def test_blank_channel_name_is_rejected(alice: Stores) -> None:
    with pytest.raises(InvalidInput):
        alice.channels.create_channel("   ")
    assert alice.channels.error == "Channel name cannot be empty"
    assert alice.channels.joined_channels == []


def test_join_promote_and_creator_protection(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Groceries")
    assert [c.id for c in bob.channels.public_channels] == [channel_id]

    bob.channels.join_channel(channel_id)
    channel = alice.channels.get_channel_by_id(channel_id)
    assert uid(bob) in channel.members
    assert uid(bob) not in channel.admins
    assert bob.channels.public_channels == []
    assert [c.id for c in bob.channels.joined_channels] == [channel_id]

    alice.channels.promote_to_admin(channel_id, uid(bob))
    channel = alice.channels.get_channel_by_id(channel_id)
    assert uid(bob) in channel.admins
    assert_role_invariant(channel)

    with pytest.raises(CannotRemoveCreator):
        alice.channels.remove_member_from_channel(channel_id, uid(alice))
    assert alice.channels.error == "Cannot remove the channel creator"
    assert uid(alice) in alice.channels.get_channel_by_id(channel_id).members


def test_joined_channels_follow_remote_changes(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Book club")
    bob.channels.join_channel(channel_id)

    [seen_by_alice] = alice.channels.joined_channels
    assert set(seen_by_alice.members) == {uid(alice), uid(bob)}


def test_join_twice_fails_with_already_member(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Gym")
    bob.channels.join_channel(channel_id)

    with pytest.raises(AlreadyMember):
        bob.channels.join_channel(channel_id)
    with pytest.raises(AlreadyMember):
        alice.channels.join_channel(channel_id)


def test_private_channel_requires_invite_code(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Secret", is_public=False)
    assert bob.channels.public_channels == []

    with pytest.raises(WrongChannelType):
        bob.channels.join_channel(channel_id)
    assert bob.channels.joined_channels == []

    code = alice.channels.joined_channels[0].invite_code
    assert code
    assert bob.channels.join_channel_by_invite_code(code) == channel_id
    assert [c.id for c in bob.channels.joined_channels] == [channel_id]
    # the code is only shown to admins
    assert bob.channels.joined_channels[0].invite_code is None

    with pytest.raises(AlreadyMember):
        bob.channels.join_channel_by_invite_code(code)


def test_unknown_invite_code_leaves_membership_unchanged(alice: Stores, bob: Stores) -> None:
    alice.channels.create_channel("Secret", is_public=False)

    with pytest.raises(InvalidCode):
        bob.channels.join_channel_by_invite_code("no-such-code")
    assert bob.channels.error == "Invalid invite code"
    assert bob.channels.joined_channels == []


def test_regenerating_invite_code_invalidates_the_old_one(alice: Stores, bob: Stores, carol: Stores) -> None:
    channel_id = alice.channels.create_channel("Secret", is_public=False)
    old_code = alice.channels.joined_channels[0].invite_code
    bob.channels.join_channel_by_invite_code(old_code)

    new_code = alice.channels.generate_invite_code(channel_id)
    assert new_code != old_code
    assert alice.channels.joined_channels[0].invite_code == new_code

    with pytest.raises(InvalidCode):
        carol.channels.join_channel_by_invite_code(old_code)
    carol.channels.join_channel_by_invite_code(new_code)
    assert uid(carol) in alice.channels.get_channel_by_id(channel_id).members
    # regenerating never touches existing members
    assert uid(bob) in alice.channels.get_channel_by_id(channel_id).members


def test_invite_codes_are_for_private_channels_only(alice: Stores, bob: Stores) -> None:
    public_id = alice.channels.create_channel("Open")
    with pytest.raises(WrongChannelType):
        alice.channels.generate_invite_code(public_id)

    private_id = alice.channels.create_channel("Closed", is_public=False)
    code = alice.channels.get_channel_by_id(private_id).invite_code
    bob.channels.join_channel_by_invite_code(code)
    with pytest.raises(PermissionDenied):
        bob.channels.generate_invite_code(private_id)


def test_creator_cannot_leave(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Family")
    bob.channels.join_channel(channel_id)

    with pytest.raises(CreatorCannotLeave):
        alice.channels.leave_channel(channel_id)
    channel = alice.channels.get_channel_by_id(channel_id)
    assert set(channel.members) == {uid(alice), uid(bob)}

    bob.channels.leave_channel(channel_id)
    assert bob.channels.joined_channels == []
    assert alice.channels.get_channel_by_id(channel_id).members == [uid(alice)]


def test_leave_without_membership(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Family")
    with pytest.raises(NotAMember):
        bob.channels.leave_channel(channel_id)


def test_only_creator_manages_admins(alice: Stores, bob: Stores, carol: Stores) -> None:
    channel_id = alice.channels.create_channel("Team")
    bob.channels.join_channel(channel_id)
    carol.channels.join_channel(channel_id)
    alice.channels.promote_to_admin(channel_id, uid(bob))

    with pytest.raises(PermissionDenied):
        bob.channels.promote_to_admin(channel_id, uid(carol))
    with pytest.raises(PermissionDenied):
        bob.channels.demote_from_admin(channel_id, uid(alice))
    with pytest.raises(CannotDemoteCreator):
        alice.channels.demote_from_admin(channel_id, uid(alice))

    alice.channels.demote_from_admin(channel_id, uid(bob))
    channel = alice.channels.get_channel_by_id(channel_id)
    assert channel.admins == [uid(alice)]
    assert uid(bob) in channel.members
    assert_role_invariant(channel)


def test_promote_requires_membership(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Team")
    with pytest.raises(NotAMember):
        alice.channels.promote_to_admin(channel_id, uid(bob))


def test_admins_remove_members_but_plain_members_cannot(alice: Stores, bob: Stores, carol: Stores) -> None:
    channel_id = alice.channels.create_channel("Team")
    bob.channels.join_channel(channel_id)
    carol.channels.join_channel(channel_id)

    with pytest.raises(PermissionDenied):
        bob.channels.remove_member_from_channel(channel_id, uid(carol))

    alice.channels.promote_to_admin(channel_id, uid(bob))
    bob.channels.remove_member_from_channel(channel_id, uid(carol))
    assert carol.channels.joined_channels == []

    with pytest.raises(NotAMember):
        bob.channels.remove_member_from_channel(channel_id, uid(carol))


def test_removed_admin_loses_admin_role(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Team")
    bob.channels.join_channel(channel_id)
    alice.channels.promote_to_admin(channel_id, uid(bob))

    alice.channels.remove_member_from_channel(channel_id, uid(bob))
    channel = alice.channels.get_channel_by_id(channel_id)
    assert uid(bob) not in channel.members
    assert uid(bob) not in channel.admins
    assert_role_invariant(channel)


def test_add_member_to_channel(alice: Stores, bob: Stores, carol: Stores) -> None:
    channel_id = alice.channels.create_channel("Closed", is_public=False)

    alice.channels.add_member_to_channel(channel_id, uid(bob))
    assert [c.id for c in bob.channels.joined_channels] == [channel_id]

    with pytest.raises(AlreadyMember):
        alice.channels.add_member_to_channel(channel_id, uid(bob))
    with pytest.raises(PermissionDenied):
        bob.channels.add_member_to_channel(channel_id, uid(carol))
    with pytest.raises(NotFound):
        alice.channels.add_member_to_channel(channel_id, "no-such-user")


def test_update_channel_toggles_invite_code(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    bob.channels.join_channel(channel_id)

    updated = alice.channels.update_channel(channel_id, name="Flat 2B", is_public=False)
    assert updated.name == "Flat 2B"
    assert updated.invite_code

    with pytest.raises(PermissionDenied):
        bob.channels.update_channel(channel_id, name="Mine now")

    updated = alice.channels.update_channel(channel_id, is_public=True)
    assert updated.invite_code is None
    assert bob.channels.joined_channels[0].name == "Flat 2B"


def test_delete_channel_is_creator_only_and_cascades(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Trip")
    bob.channels.join_channel(channel_id)
    alice.channels.promote_to_admin(channel_id, uid(bob))
    alice.tasks.add_task({"title": "Book hotel", "channel_id": channel_id})
    alice.chat.send_message(channel_id, "Who is in?")

    with pytest.raises(PermissionDenied):
        bob.channels.delete_channel(channel_id)

    alice.channels.delete_channel(channel_id)
    assert alice.channels.joined_channels == []
    assert bob.channels.joined_channels == []
    assert alice.channels.get_channel_by_id(channel_id) is None
    assert bob.tasks.channel_tasks() == []
    with pytest.raises(NotFound):
        alice.tasks.get_tasks_by_channel(channel_id)


def test_channel_members_listing(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Team")
    bob.channels.join_channel(channel_id)

    members = alice.channels.get_channel_members(channel_id)
    roles = {m.user_id: m.role.value for m in members}
    assert roles == {uid(alice): "creator", uid(bob): "member"}
    assert [m.display_name for m in members] == ["Alice", "Bob"]


def test_role_invariant_holds_through_a_sequence(alice: Stores, bob: Stores, carol: Stores) -> None:
    channel_id = alice.channels.create_channel("Team")
    steps = [
        lambda: bob.channels.join_channel(channel_id),
        lambda: carol.channels.join_channel(channel_id),
        lambda: alice.channels.promote_to_admin(channel_id, uid(bob)),
        lambda: alice.channels.promote_to_admin(channel_id, uid(alice)),
        lambda: bob.channels.remove_member_from_channel(channel_id, uid(carol)),
        lambda: alice.channels.demote_from_admin(channel_id, uid(bob)),
        lambda: bob.channels.leave_channel(channel_id),
    ]
    for step in steps:
        step()
        assert_role_invariant(alice.channels.get_channel_by_id(channel_id))


def test_operations_require_a_session(make_stores) -> None:
    anonymous = make_stores()
    with pytest.raises(AuthRequired):
        anonymous.channels.create_channel("Nobody's")
    assert anonymous.channels.error == "You must be logged in"


def test_logout_clears_channel_state(alice: Stores) -> None:
    alice.channels.create_channel("Flat")
    alice.session.logout()
    assert alice.channels.joined_channels == []
    assert alice.channels.public_channels == []
    assert alice.backend.realtime.listener_count() == 0
