import asyncio

import pytest

from events import EventBus, EventTypes
from ledger.models import Identity, IdentityScope
from session import ConnectChoice, MemoryStore, Origin, SessionIdentityStore
from session.identity_store import DEFAULT_KEYS
from fakes import FakeFunder, make_address

A, B, C, D, E, F = (make_address(f"User{c}") for c in "ABCDEF")


def make_store(origin=None, funder=None, bus=None, writer="ctx", **kwargs):
    origin = origin or Origin()
    return SessionIdentityStore(
        tab_store=MemoryStore(IdentityScope.TAB),
        shared_store=origin.shared_view(writer),
        funder=funder or FakeFunder(),
        bus=bus,
        **kwargs,
    )


def test_connect_without_saved_identity_funds_a_new_one():
    funder = FakeFunder(A)
    store = make_store(funder=funder)

    identity = asyncio.run(store.connect())

    assert identity.address == A
    assert identity.scope == IdentityScope.TAB
    assert store.active_identity().address == A
    assert store.saved_identity().address == A
    assert store.recent_addresses() == [A]
    assert funder.calls == 1


def test_connect_with_saved_identity_offers_a_choice():
    origin = Origin()
    first = make_store(origin, funder=FakeFunder(A), writer="one")
    asyncio.run(first.create_new())

    second = make_store(origin, writer="two")
    choice = asyncio.run(second.connect())

    assert isinstance(choice, ConnectChoice)
    assert choice.saved_address == A
    # Nothing is restored until the caller decides
    assert second.active_identity() is None

    restored = choice.use_saved()
    assert restored.address == A
    assert restored.scope == IdentityScope.TAB
    assert second.active_identity().address == A


def test_choice_can_create_a_new_identity():
    origin = Origin()
    asyncio.run(make_store(origin, funder=FakeFunder(A), writer="one").create_new())

    funder = FakeFunder(B)
    second = make_store(origin, funder=funder, writer="two")
    choice = asyncio.run(second.connect())
    created = asyncio.run(choice.create_new())

    assert created.address == B
    assert second.saved_identity().address == B


def test_connect_returns_existing_tab_identity():
    funder = FakeFunder(A, B)
    store = make_store(funder=funder)
    asyncio.run(store.connect())

    again = asyncio.run(store.connect())

    assert again.address == A
    assert funder.calls == 1


def test_use_saved_without_saved_identity():
    with pytest.raises(LookupError):
        make_store().use_saved()


def test_disconnect_only_clears_this_context():
    origin = Origin()
    one = make_store(origin, funder=FakeFunder(A), writer="one")
    two = make_store(origin, funder=FakeFunder(B), writer="two")
    asyncio.run(one.create_new())
    asyncio.run(two.create_new())

    one.disconnect()

    assert one.active_identity() is None
    assert two.active_identity().address == B
    assert one.saved_identity().address == B
    assert set(one.recent_addresses()) == {A, B}


def test_disconnect_emits_cleared_identity():
    bus = EventBus()
    changes = []
    bus.on(EventTypes.IDENTITY_CHANGED, lambda event: changes.append(event.data["address"]))
    store = make_store(bus=bus, funder=FakeFunder(A))
    asyncio.run(store.create_new())

    store.disconnect()

    assert changes == [A, None]


def test_recent_addresses_are_promoted_and_bounded():
    store = make_store()
    for address in (A, B, C, D, E):
        store.remember_address(address)
    assert store.recent_addresses() == [E, D, C, B, A]

    store.remember_address(A)
    assert store.recent_addresses() == [A, E, D, C, B]

    store.remember_address(F)
    assert store.recent_addresses() == [F, A, E, D, C]


def test_first_recent_address_is_not_rewritten():
    origin = Origin()
    store = make_store(origin)
    store.remember_address(A)
    published = origin.notifier.published

    store.remember_address(A)

    assert origin.notifier.published == published


def test_malformed_recent_list_reads_empty():
    origin = Origin()
    store = make_store(origin)
    origin.shared_store.set(DEFAULT_KEYS["recent_addresses"], "{not json")
    assert store.recent_addresses() == []

    origin.shared_store.set(DEFAULT_KEYS["recent_addresses"], '["' + A + '", 7, "", null]')
    assert store.recent_addresses() == [A]


def test_demo_slots_keep_last_two_distinct_addresses():
    store = make_store()

    store.remember_address(A)
    assert store.demo_users() == (A, None)

    store.remember_address(B)
    store.remember_address(A)
    assert store.demo_users() == (A, B)

    store.remember_address(C)
    assert store.demo_users() == (B, C)


def test_shared_writes_notify_writer_and_other_contexts():
    origin = Origin()
    bus_one, bus_two = EventBus(), EventBus()
    one = make_store(origin, bus=bus_one, writer="one")
    two = make_store(origin, bus=bus_two, writer="two")
    origin.notifier.subscribe(one.handle_shared_change)
    origin.notifier.subscribe(two.handle_shared_change)

    seen_one, seen_two = [], []
    bus_one.on(EventTypes.RECENT_ADDRESSES_CHANGED, lambda event: seen_one.append(event.data))
    bus_two.on(EventTypes.RECENT_ADDRESSES_CHANGED, lambda event: seen_two.append(event.data))

    one.remember_address(A)

    # Delivered before remember_address returns
    assert seen_one[0]["addresses"] == [A]
    assert seen_one[0]["writer"] == "one"
    assert seen_two[0]["addresses"] == [A]


def test_demo_user_changes_are_signalled():
    origin = Origin()
    bus = EventBus()
    store = make_store(origin, bus=bus)
    origin.notifier.subscribe(store.handle_shared_change)
    seen = []
    bus.on(EventTypes.DEMO_USERS_CHANGED, lambda event: seen.append((event.data["user1"], event.data["user2"])))

    store.remember_address(A)
    store.remember_address(B)

    assert seen == [(A, None), (A, B)]


def test_shared_fallback_follows_saved_identity_until_disconnect():
    origin = Origin()
    origin.shared_store.set(DEFAULT_KEYS["shared_identity"], Identity(A, "sSecret").to_json())
    store = make_store(origin, shared_fallback=True)

    assert store.active_identity().address == A
    assert store.active_identity().scope == IdentityScope.SHARED

    store.disconnect()
    assert store.active_identity() is None


def test_secret_is_not_logged(caplog):
    store = make_store(funder=FakeFunder(A))
    with caplog.at_level("INFO"):
        identity = asyncio.run(store.create_new())

    assert identity.secret not in caplog.text
    assert A in caplog.text
