"""
Centralized configuration for ledger access, funnel polling and session storage
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Ledger endpoints
LEDGER_ENDPOINTS = {
    "testnet": "wss://s.altnet.rippletest.net:51233",
    "devnet": "wss://s.devnet.rippletest.net:51233",
}

FAUCET_ENDPOINTS = {
    "testnet": "https://faucet.altnet.rippletest.net/accounts",
    "devnet": "https://faucet.devnet.rippletest.net/accounts",
}

DEFAULT_NETWORK = os.getenv("LEDGER_NETWORK", "testnet")

# Ledger access settings
LEDGER_CONFIG = {
    "endpoint": os.getenv("LEDGER_ENDPOINT", LEDGER_ENDPOINTS.get(DEFAULT_NETWORK, LEDGER_ENDPOINTS["testnet"])),
    "faucet_url": os.getenv("FAUCET_URL", FAUCET_ENDPOINTS.get(DEFAULT_NETWORK, FAUCET_ENDPOINTS["testnet"])),
    "connect_timeout": float(os.getenv("LEDGER_CONNECT_TIMEOUT", "15.0")),  # seconds
    "request_timeout": float(os.getenv("LEDGER_REQUEST_TIMEOUT", "10.0")),  # seconds
    "funding_timeout": float(os.getenv("FAUCET_TIMEOUT", "60.0")),  # seconds

    # Issuer lookup: a fixed address wins over the HTTP endpoint
    "issuer_address": os.getenv("ISSUER_ADDRESS", ""),
    "issuer_endpoint": os.getenv("ISSUER_ENDPOINT", "http://localhost:3000/api/admin/issuer"),

    # Gated asset and credential
    "credential_type": os.getenv("CREDENTIAL_TYPE", "CerberusVerified"),
    "asset_code": os.getenv("ASSET_CODE", "CERB"),

    # Submission finality polling
    "submission_poll_interval": float(os.getenv("SUBMISSION_POLL_INTERVAL", "1.0")),  # seconds
    "submission_timeout": float(os.getenv("SUBMISSION_TIMEOUT", "30.0")),  # seconds
}

# Funnel state machine settings
FUNNEL_CONFIG = {
    "poll_interval_ms": int(os.getenv("FUNNEL_POLL_INTERVAL_MS", "4000")),
}

# Session identity storage
SESSION_CONFIG = {
    # Empty path keeps the shared scope in memory only
    "shared_store_path": os.getenv("SHARED_STORE_PATH", ""),
    "recent_address_limit": 5,
    # Follow the saved identity in contexts that have not chosen one
    "shared_fallback": os.getenv("SHARED_IDENTITY_FALLBACK", "false").lower() == "true",
    "keys": {
        "shared_identity": "cerberus.xrpl.seed",
        "tab_identity": "cerberus.xrpl.session-seed",
        "recent_addresses": "cerberus.demo.recent-addresses",
        "demo_user1": "cerberus.demo.user1.address",
        "demo_user2": "cerberus.demo.user2.address",
    },
}

# Logging configuration
LOGGING_CONFIG = {
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "log_dir": os.getenv("LOG_DIR", "./logs"),
    "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "false").lower() == "true",
    "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
    "structured_logging": os.getenv("ENVIRONMENT", "development").lower() == "production",
    "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
    "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
}
