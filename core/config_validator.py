"""
Configuration validation module.

This module validates the configuration settings on startup to catch
issues early and provide clear error messages for misconfigurations.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import ConfigValidationError
from .logging_config import get_logger

logger = get_logger(__name__)


class ConfigValidator:
    """Validates ledger, funnel, session and logging configuration"""

    def __init__(self,
                 ledger_config: Optional[Dict[str, Any]] = None,
                 funnel_config: Optional[Dict[str, Any]] = None,
                 session_config: Optional[Dict[str, Any]] = None,
                 logging_config: Optional[Dict[str, Any]] = None):
        if ledger_config is None or funnel_config is None or session_config is None or logging_config is None:
            from config import FUNNEL_CONFIG, LEDGER_CONFIG, LOGGING_CONFIG, SESSION_CONFIG
            ledger_config = LEDGER_CONFIG if ledger_config is None else ledger_config
            funnel_config = FUNNEL_CONFIG if funnel_config is None else funnel_config
            session_config = SESSION_CONFIG if session_config is None else session_config
            logging_config = LOGGING_CONFIG if logging_config is None else logging_config

        self.ledger_config = ledger_config
        self.funnel_config = funnel_config
        self.session_config = session_config
        self.logging_config = logging_config
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """
        Validate all configuration settings.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()

        self._validate_endpoints()
        self._validate_timeouts()
        self._validate_asset()
        self._validate_issuer()
        self._validate_funnel_config()
        self._validate_session_config()
        self._validate_logging_config()

        is_valid = len(self.errors) == 0
        return is_valid, self.errors.copy(), self.warnings.copy()

    def _validate_endpoints(self):
        """Validate ledger and HTTP endpoint URLs"""
        endpoint = self.ledger_config.get("endpoint", "")
        if not endpoint.startswith(("ws://", "wss://")):
            self.errors.append(f"Ledger endpoint has invalid URL format: {endpoint!r} (expected ws:// or wss://)")
        elif endpoint.startswith("ws://"):
            self.warnings.append(f"Ledger endpoint {endpoint} is not encrypted")

        for name in ("faucet_url", "issuer_endpoint"):
            url = self.ledger_config.get(name, "")
            if url and not url.startswith(("http://", "https://")):
                self.errors.append(f"{name} has invalid URL format: {url!r}")

    def _validate_timeouts(self):
        """Validate that every timeout and interval is positive"""
        for name in ("connect_timeout", "request_timeout", "funding_timeout",
                     "submission_poll_interval", "submission_timeout"):
            value = self.ledger_config.get(name)
            if value is None:
                continue
            if value <= 0:
                self.errors.append(f"{name} must be positive, got {value}")

        request_timeout = self.ledger_config.get("request_timeout", 10.0)
        if request_timeout > 60.0:
            self.warnings.append(f"Request timeout {request_timeout}s is high; refreshes may stall for that long")

    def _validate_asset(self):
        """Validate the gated asset code and credential type"""
        from ledger.currency import to_currency_code

        asset_code = self.ledger_config.get("asset_code", "")
        try:
            to_currency_code(asset_code)
        except ValueError as e:
            self.errors.append(f"Invalid asset code {asset_code!r}: {e}")

        if not self.ledger_config.get("credential_type"):
            self.errors.append("credential_type must not be empty")

    def _validate_issuer(self):
        """Validate the issuer address or the issuer lookup endpoint"""
        from security import AccountValidator

        issuer_address = self.ledger_config.get("issuer_address", "")
        if issuer_address:
            if not AccountValidator.is_classic_address(issuer_address):
                self.errors.append(f"ISSUER_ADDRESS is not a valid account address: {issuer_address!r}")
        elif not self.ledger_config.get("issuer_endpoint"):
            self.errors.append("Either ISSUER_ADDRESS or ISSUER_ENDPOINT must be set")

    def _validate_funnel_config(self):
        """Validate funnel polling"""
        interval = self.funnel_config.get("poll_interval_ms", 4000)
        if interval <= 0:
            self.errors.append(f"poll_interval_ms must be positive, got {interval}")
        elif interval < 1000:
            self.warnings.append(f"Poll interval {interval}ms may overload the ledger endpoint. Recommended: 4000ms")

    def _validate_session_config(self):
        """Validate session storage settings"""
        limit = self.session_config.get("recent_address_limit", 5)
        if limit < 1:
            self.errors.append(f"recent_address_limit must be at least 1, got {limit}")

        path = self.session_config.get("shared_store_path")
        if path:
            parent_dir = Path(path).parent
            if not parent_dir.exists():
                self.warnings.append(f"Shared store directory '{parent_dir}' does not exist; it will be created")
            elif not os.access(parent_dir, os.W_OK):
                self.warnings.append(f"Shared store directory '{parent_dir}' is not writable; shared scope will be in memory")

    def _validate_logging_config(self):
        """Validate logging configuration"""
        log_level = self.logging_config.get("log_level", "INFO")
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            self.errors.append(f"Invalid log level '{log_level}'. Must be one of: {', '.join(valid_levels)}")

        max_size = self.logging_config.get("max_log_size_mb", 10)
        if max_size < 1 or max_size > 1000:
            self.warnings.append(f"Log file size {max_size}MB may be {'too small' if max_size < 5 else 'too large'}. Recommended: 5-100MB")

        backup_count = self.logging_config.get("backup_count", 5)
        if backup_count < 1 or backup_count > 50:
            self.warnings.append(f"Log backup count {backup_count} may be {'too low' if backup_count < 3 else 'too high'}. Recommended: 3-20")


def validate_startup_config(validator: Optional[ConfigValidator] = None) -> List[str]:
    """
    Validate configuration on startup.

    Returns:
        The warnings found

    Raises:
        ConfigValidationError: If critical configuration errors are found
    """
    validator = validator or ConfigValidator()
    is_valid, errors, warnings = validator.validate_all()

    for warning in warnings:
        logger.warning(f"Configuration warning: {warning}")

    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")

        error_msg = f"Found {len(errors)} configuration error(s) that must be fixed before starting."
        if warnings:
            error_msg += f" Also found {len(warnings)} warning(s) that should be addressed."
        raise ConfigValidationError(error_msg, {"errors": errors, "warnings": warnings})

    if warnings:
        logger.info(f"Configuration validated with {len(warnings)} warning(s)")
    else:
        logger.info("Configuration validated successfully")

    return warnings
