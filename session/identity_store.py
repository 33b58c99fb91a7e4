"""
Session identity store: which identity each browsing context is using
"""

from typing import Dict, List, Optional, Tuple, Union

from core.logging_config import get_logger
from events import EventTypes
from ledger.models import Identity, IdentityScope
from security import AccountValidator, mask_secret
from .storage import KeyValueStore, load_string_list, save_string_list

logger = get_logger(__name__)

DEFAULT_KEYS = {
    "shared_identity": "cerberus.xrpl.seed",
    "tab_identity": "cerberus.xrpl.session-seed",
    "tab_detached": "cerberus.xrpl.session-detached",
    "recent_addresses": "cerberus.demo.recent-addresses",
    "demo_user1": "cerberus.demo.user1.address",
    "demo_user2": "cerberus.demo.user2.address",
}


class ConnectChoice:
    """
    Returned by connect() when a saved identity exists but this context has none.

    The caller must pick one of the two options; nothing is restored until it does.
    """

    def __init__(self, store: "SessionIdentityStore", saved: Identity):
        self._store = store
        self.saved_address = saved.address

    def use_saved(self) -> Identity:
        """Bind the saved identity to this context"""
        return self._store.use_saved()

    async def create_new(self) -> Identity:
        """Fund a brand-new identity instead"""
        return await self._store.create_new()

    def __repr__(self):
        return f"ConnectChoice(saved_address={self.saved_address!r})"


class SessionIdentityStore:
    """
    Per-context identity management over a tab store and a shared store.

    The tab store holds this context's identity; the shared store holds the
    saved default identity, the recent-address list and the demo user slots.
    Writing to the shared store is announced through its notifier, and
    handle_shared_change() turns those announcements into bus signals.
    """

    def __init__(self,
                 tab_store: KeyValueStore,
                 shared_store: KeyValueStore,
                 funder,
                 bus=None,
                 keys: Optional[Dict[str, str]] = None,
                 recent_limit: int = 5,
                 shared_fallback: bool = False):
        """
        Args:
            tab_store: Store private to this browsing context
            shared_store: Origin-wide store
            funder: Object with async fund() -> Identity
            bus: This context's EventBus
            keys: Storage key names, overriding DEFAULT_KEYS
            recent_limit: Maximum length of the recent-address list
            shared_fallback: Treat the saved identity as active while this
                context has none of its own and has not disconnected
        """
        self.tab_store = tab_store
        self.shared_store = shared_store
        self.funder = funder
        self.bus = bus
        self.keys = {**DEFAULT_KEYS, **(keys or {})}
        self.recent_limit = recent_limit
        self.shared_fallback = shared_fallback

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def active_identity(self) -> Optional[Identity]:
        """The identity this context is using, if any"""
        identity = Identity.from_json(self.tab_store.get(self.keys["tab_identity"]), IdentityScope.TAB)
        if identity is not None:
            return identity

        if self.shared_fallback and not self.tab_store.get(self.keys["tab_detached"]):
            return self.saved_identity()

        return None

    def saved_identity(self) -> Optional[Identity]:
        """The origin-wide saved identity, if any"""
        return Identity.from_json(self.shared_store.get(self.keys["shared_identity"]), IdentityScope.SHARED)

    async def connect(self) -> Union[Identity, ConnectChoice]:
        """
        Connect this context to an identity

        Returns:
            The context's identity if it already has one, a ConnectChoice when
            a saved identity exists, otherwise a freshly funded identity

        Raises:
            FundingError: Creating a new identity failed
        """
        current = Identity.from_json(self.tab_store.get(self.keys["tab_identity"]), IdentityScope.TAB)
        if current is not None:
            return current

        saved = self.saved_identity()
        if saved is not None:
            return ConnectChoice(self, saved)

        return await self.create_new()

    def use_saved(self) -> Identity:
        """
        Copy the saved identity into this context

        Raises:
            LookupError: There is no saved identity
        """
        saved = self.saved_identity()
        if saved is None:
            raise LookupError("No saved identity to restore")

        identity = saved.with_scope(IdentityScope.TAB)
        self._bind(identity, "use_saved")
        return identity

    async def create_new(self) -> Identity:
        """
        Fund a new identity, bind it here and make it the saved default

        Raises:
            FundingError: The funding service failed
            InputValidationError: The funded address is malformed
        """
        funded = await self.funder.fund()
        AccountValidator.validate_address(funded.address)

        identity = funded.with_scope(IdentityScope.TAB)
        logger.info(f"Created identity {identity.address} (secret {mask_secret(identity.secret)})")

        self._bind(identity, "create_new")
        self.shared_store.set(self.keys["shared_identity"], identity.to_json())
        return identity

    def disconnect(self) -> None:
        """Forget this context's identity; the shared store is left untouched"""
        identity = self.active_identity()
        if identity is not None:
            self.remember_address(identity.address)

        self.tab_store.remove(self.keys["tab_identity"])
        if self.shared_fallback:
            self.tab_store.set(self.keys["tab_detached"], "1")

        logger.info(f"Disconnected {identity.address if identity else 'no identity'} from this context")
        self._emit(EventTypes.IDENTITY_CHANGED, {"address": None, "reason": "disconnect"})

    def _bind(self, identity: Identity, reason: str) -> None:
        self.tab_store.set(self.keys["tab_identity"], identity.to_json())
        self.tab_store.remove(self.keys["tab_detached"])
        self.remember_address(identity.address)
        self._emit(EventTypes.IDENTITY_CHANGED, {"address": identity.address, "reason": reason})

    # ------------------------------------------------------------------
    # Address bookkeeping
    # ------------------------------------------------------------------

    def remember_address(self, address: Optional[str]) -> None:
        """Record an address in the recent list and the demo user slots"""
        if not address:
            return
        self._remember_recent(address)
        self._remember_demo_user(address)

    def _remember_recent(self, address: str) -> None:
        key = self.keys["recent_addresses"]
        existing = load_string_list(self.shared_store, key)
        if existing and existing[0] == address:
            return

        deduped = [address] + [a for a in existing if a != address]
        save_string_list(self.shared_store, key, deduped[:self.recent_limit])

    def _remember_demo_user(self, address: str) -> None:
        user1_key, user2_key = self.keys["demo_user1"], self.keys["demo_user2"]
        user1 = self.shared_store.get(user1_key)
        user2 = self.shared_store.get(user2_key)

        if address in (user1, user2):
            return

        if not user1:
            self.shared_store.set(user1_key, address)
        elif not user2:
            self.shared_store.set(user2_key, address)
        else:
            # Keep the last two distinct addresses
            self.shared_store.set(user1_key, user2)
            self.shared_store.set(user2_key, address)

    def recent_addresses(self) -> List[str]:
        return load_string_list(self.shared_store, self.keys["recent_addresses"])

    def demo_users(self) -> Tuple[Optional[str], Optional[str]]:
        return (
            self.shared_store.get(self.keys["demo_user1"]) or None,
            self.shared_store.get(self.keys["demo_user2"]) or None,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def handle_shared_change(self, key: str, writer: Optional[str] = None) -> None:
        """Translate a shared-store change into the matching bus signal"""
        data = {"key": key, "writer": writer}

        if key == self.keys["recent_addresses"]:
            self._emit(EventTypes.RECENT_ADDRESSES_CHANGED, {**data, "addresses": self.recent_addresses()})
        elif key in (self.keys["demo_user1"], self.keys["demo_user2"]):
            user1, user2 = self.demo_users()
            self._emit(EventTypes.DEMO_USERS_CHANGED, {**data, "user1": user1, "user2": user2})
        elif key == self.keys["shared_identity"] and self.shared_fallback:
            # Only matters to contexts that follow the saved identity
            if Identity.from_json(self.tab_store.get(self.keys["tab_identity"])) is None:
                active = self.active_identity()
                self._emit(EventTypes.IDENTITY_CHANGED, {
                    **data,
                    "address": active.address if active else None,
                    "reason": "saved_identity_changed",
                })

    def _emit(self, event_type: str, data: Dict) -> None:
        if self.bus is not None:
            self.bus.emit(event_type, data, source="identity_store")
