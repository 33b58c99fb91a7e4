import asyncio

import pytest

from core.exceptions import LedgerConnectionError, QueryError
import ledger.connection as ledger_connection
from ledger import LedgerClient, LedgerConnection
from ledger.models import parse_credential_object, parse_trust_line
from fakes import ASSET_CODE, ISSUER, SUBJECT, ScriptedConnection, credential_entry, trust_line_entry


def run(coro):
    return asyncio.run(coro)


def not_found(command):
    return QueryError(command, "Account not found.", {"error": "actNotFound"})


def test_account_objects_follows_markers():
    connection = ScriptedConnection(
        {"account_objects": [credential_entry("ONE")], "marker": "PAGE2"},
        {"account_objects": [credential_entry("TWO")]},
    )

    credentials = run(LedgerClient(connection).credential_objects(ISSUER))

    assert [c.id for c in credentials] == ["ONE", "TWO"]
    assert "marker" not in connection.requests[0]
    assert connection.requests[1]["marker"] == "PAGE2"


def test_pagination_is_bounded():
    connection = ScriptedConnection(*[{"account_objects": [], "marker": "MORE"} for _ in range(3)])

    result = run(LedgerClient(connection, max_pages=3).account_objects(ISSUER))

    assert result == []
    assert len(connection.requests) == 3


def test_unknown_account_has_no_objects():
    connection = ScriptedConnection(not_found("account_objects"))
    assert run(LedgerClient(connection).credential_objects(SUBJECT)) == []


def test_other_errors_propagate():
    connection = ScriptedConnection(QueryError("account_objects", "Invalid field", {"error": "invalidParams"}))

    with pytest.raises(QueryError, match="Invalid field"):
        run(LedgerClient(connection).credential_objects(SUBJECT))


def test_missing_list_is_a_query_error():
    connection = ScriptedConnection({"validated": True})

    with pytest.raises(QueryError, match="account_objects"):
        run(LedgerClient(connection).account_objects(SUBJECT))


def test_malformed_credentials_are_dropped():
    broken = credential_entry("BROKEN")
    del broken["Subject"]
    connection = ScriptedConnection({"account_objects": [broken, "junk", credential_entry("GOOD")]})

    credentials = run(LedgerClient(connection).credential_objects(ISSUER))

    assert [c.id for c in credentials] == ["GOOD"]


def test_find_trust_line_matches_peer_and_currency():
    other_asset = trust_line_entry(currency="USD", authorized=True)
    wanted = trust_line_entry(authorized=True, balance="12")
    connection = ScriptedConnection({"lines": [other_asset, wanted]})

    line = run(LedgerClient(connection).find_trust_line(SUBJECT, ISSUER, ASSET_CODE))

    assert line.asset_code == ASSET_CODE
    assert line.counterparty_authorized
    assert line.balance == "12"
    assert line.owner_address == SUBJECT
    assert connection.requests[0]["peer"] == ISSUER


def test_find_trust_line_absent():
    connection = ScriptedConnection({"lines": []})
    assert run(LedgerClient(connection).find_trust_line(SUBJECT, ISSUER, ASSET_CODE)) is None


def test_account_info():
    connection = ScriptedConnection({"account_data": {"Balance": "100000000", "Sequence": 7}})

    info = run(LedgerClient(connection).account_info(SUBJECT))

    assert info.to_dict() == {"address": SUBJECT, "balance_drops": "100000000", "sequence": 7}


def test_account_info_not_found_is_none():
    connection = ScriptedConnection(not_found("account_info"))
    assert run(LedgerClient(connection).account_info(SUBJECT)) is None


def test_account_info_validates_shape():
    connection = ScriptedConnection({"account_data": {"Balance": 100, "Sequence": "7"}})

    with pytest.raises(QueryError):
        run(LedgerClient(connection).account_info(SUBJECT))


def test_server_info_requires_info_object():
    assert run(LedgerClient(ScriptedConnection({"info": {"server_state": "full"}})).server_info()) == {
        "server_state": "full"
    }
    with pytest.raises(QueryError):
        run(LedgerClient(ScriptedConnection({})).server_info())


def test_unwrap_error_response():
    with pytest.raises(QueryError) as excinfo:
        LedgerConnection._unwrap_response("account_info", {
            "id": 1,
            "status": "error",
            "error": "actNotFound",
            "error_message": "Account not found.",
        })

    assert excinfo.value.command == "account_info"
    assert excinfo.value.details["error"] == "actNotFound"


def test_unwrap_requires_result_object():
    with pytest.raises(QueryError, match="no result"):
        LedgerConnection._unwrap_response("server_info", {"id": 1, "status": "success"})

    assert LedgerConnection._unwrap_response("server_info", {"status": "success", "result": {"a": 1}}) == {"a": 1}


def test_request_without_connection_fails():
    connection = LedgerConnection("wss://example.invalid")

    with pytest.raises(LedgerConnectionError):
        run(connection.request({"command": "server_info"}))


def test_parse_credential_flags_and_expiration():
    entry = credential_entry("CRED", accepted=True, expiration=1234)
    credential = parse_credential_object(entry)

    assert credential.accepted
    assert credential.expiration == 1234
    assert parse_credential_object({**entry, "Flags": True}).accepted is False
    assert parse_credential_object({**entry, "Expiration": "soon"}).expiration is None


def test_parse_trust_line_requires_peer_and_currency():
    assert parse_trust_line({"currency": "USD"}, SUBJECT) is None
    assert parse_trust_line({"account": ISSUER, "currency": "USD", "peer_authorized": "yes"},
                            SUBJECT).counterparty_authorized is False


class BrokenSocket:
    """Socket whose message stream fails with something other than a close"""

    def __init__(self):
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        raise RuntimeError("decoder exploded")

    async def send(self, message):
        pass

    async def close(self):
        self.closed = True


def test_reconnect_closes_socket_left_by_failed_reader(monkeypatch):
    sockets = []

    async def fake_connect(url, open_timeout=None):
        sockets.append(BrokenSocket())
        return sockets[-1]

    monkeypatch.setattr(ledger_connection.websockets, "connect", fake_connect)

    async def scenario():
        connection = LedgerConnection("wss://ledger.test")
        await connection.connect()
        await asyncio.sleep(0.01)
        assert not connection.is_connected

        await connection.connect()

        assert len(sockets) == 2
        assert sockets[0].closed
        assert not sockets[1].closed
        await connection.close()
        assert sockets[1].closed

    run(scenario())
