from funnel import FunnelState, FunnelStatus, derive_funnel_state
from ledger.models import CredentialObject, TrustLine
from fakes import ASSET_CODE, CREDENTIAL_TYPE, ISSUER, SUBJECT

PENDING = CredentialObject("CRED", ISSUER, SUBJECT, CREDENTIAL_TYPE, accepted=False)
ACCEPTED = CredentialObject("CRED", ISSUER, SUBJECT, CREDENTIAL_TYPE, accepted=True)
LINE = TrustLine(SUBJECT, ISSUER, ASSET_CODE, counterparty_authorized=False)
AUTHORIZED_LINE = TrustLine(SUBJECT, ISSUER, ASSET_CODE, counterparty_authorized=True)


def test_no_identity_is_disconnected():
    assert derive_funnel_state(None, ISSUER, ACCEPTED, AUTHORIZED_LINE) == FunnelState.disconnected()


def test_missing_credential():
    state = derive_funnel_state(SUBJECT, ISSUER, None, None)
    assert state.status == FunnelStatus.CONNECTED_NO_CREDENTIAL
    assert state.issuer_address == ISSUER
    assert state.credential_id is None


def test_unaccepted_credential_ignores_trust_line():
    state = derive_funnel_state(SUBJECT, ISSUER, PENDING, AUTHORIZED_LINE)
    assert state == FunnelState(FunnelStatus.CREDENTIAL_UNACCEPTED, ISSUER, "CRED")


def test_accepted_without_trust_line():
    state = derive_funnel_state(SUBJECT, ISSUER, ACCEPTED, None)
    assert state.status == FunnelStatus.CREDENTIAL_ACCEPTED_NO_TRUSTLINE


def test_unauthorized_trust_line_is_pending():
    state = derive_funnel_state(SUBJECT, ISSUER, ACCEPTED, LINE)
    assert state.status == FunnelStatus.TRUSTLINE_PENDING


def test_authorized_trust_line():
    state = derive_funnel_state(SUBJECT, ISSUER, ACCEPTED, AUTHORIZED_LINE)
    assert state == FunnelState(FunnelStatus.AUTHORIZED, ISSUER, "CRED")


def test_derivation_is_deterministic():
    first = derive_funnel_state(SUBJECT, ISSUER, ACCEPTED, LINE)
    second = derive_funnel_state(SUBJECT, ISSUER, ACCEPTED, LINE)
    assert first == second
    assert hash(first) == hash(second)


def test_to_dict_includes_payload_only_when_present():
    assert FunnelState.loading().to_dict() == {"kind": "loading"}
    assert derive_funnel_state(SUBJECT, ISSUER, PENDING, None).to_dict() == {
        "kind": "credential_unaccepted",
        "issuer_address": ISSUER,
        "credential_id": "CRED",
    }
