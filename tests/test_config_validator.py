import pytest

from core.config_validator import ConfigValidator, validate_startup_config
from core.exceptions import ConfigValidationError
from fakes import ISSUER


def make_validator(**ledger_overrides):
    ledger = {
        "endpoint": "wss://s.altnet.rippletest.net:51233",
        "faucet_url": "https://faucet.altnet.rippletest.net/accounts",
        "connect_timeout": 15.0,
        "request_timeout": 10.0,
        "funding_timeout": 60.0,
        "issuer_address": "",
        "issuer_endpoint": "http://localhost:3000/api/admin/issuer",
        "credential_type": "CerberusVerified",
        "asset_code": "CERB",
        "submission_poll_interval": 1.0,
        "submission_timeout": 30.0,
    }
    ledger.update(ledger_overrides)
    return ConfigValidator(
        ledger_config=ledger,
        funnel_config={"poll_interval_ms": 4000},
        session_config={"shared_store_path": "", "recent_address_limit": 5},
        logging_config={"log_level": "INFO", "max_log_size_mb": 10, "backup_count": 5},
    )


def test_defaults_are_valid():
    is_valid, errors, warnings = make_validator().validate_all()

    assert is_valid
    assert errors == []
    assert warnings == []


def test_endpoint_scheme_is_checked():
    is_valid, errors, _ = make_validator(endpoint="https://not-a-websocket").validate_all()
    assert not is_valid
    assert any("Ledger endpoint" in e for e in errors)


def test_plain_websocket_is_a_warning():
    is_valid, _, warnings = make_validator(endpoint="ws://localhost:6006").validate_all()
    assert is_valid
    assert any("not encrypted" in w for w in warnings)


def test_timeouts_must_be_positive():
    _, errors, _ = make_validator(request_timeout=0, submission_timeout=-1).validate_all()
    assert len([e for e in errors if "must be positive" in e]) == 2


def test_asset_code_is_checked():
    _, errors, _ = make_validator(asset_code="WAYTOOLONGCODE").validate_all()
    assert any("asset code" in e for e in errors)


def test_issuer_address_format():
    assert make_validator(issuer_address=ISSUER).validate_all()[0]

    _, errors, _ = make_validator(issuer_address="not-an-address").validate_all()
    assert any("ISSUER_ADDRESS" in e for e in errors)


def test_issuer_source_required():
    _, errors, _ = make_validator(issuer_address="", issuer_endpoint="").validate_all()
    assert any("ISSUER_ENDPOINT" in e for e in errors)


def test_startup_validation_raises_with_details():
    with pytest.raises(ConfigValidationError) as excinfo:
        validate_startup_config(make_validator(endpoint="http://wrong"))

    assert excinfo.value.details["errors"]


def test_startup_validation_returns_warnings():
    assert validate_startup_config(make_validator(endpoint="ws://localhost:6006"))
