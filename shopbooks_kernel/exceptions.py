"""
Typed exception hierarchy for shopbooks.

===============================================================================
WHAT RAISES AND WHAT DOES NOT
===============================================================================

Business conditions never raise. The bookkeeping engine keeps selling when
stock is short (average-cost fallback), ignores deletes of unknown ids, and
skips suppliers it cannot age. Those conditions are reported as structured
warnings and log records instead.

Exceptions are reserved for input the engine cannot represent at all
(negative amounts, a purchase paying more than it costs), unreadable
persisted state, and broken configuration.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ShopbooksError (base)
    |
    +-- RecordError
    |   +-- InvalidRecordError
    |
    +-- StateError
    |   +-- StateLoadError
    |   +-- StateStoreError
    |
    +-- ConfigError
        +-- InvalidConfigError

===============================================================================
ERROR CODES
===============================================================================

Category | Code               | When Raised
---------|--------------------|-------------------------------------------------
Record   | INVALID_RECORD     | Field-level validation of a record failed
State    | STATE_LOAD_FAILED  | Persisted blob is not valid JSON / not a mapping
         | STATE_STORE_FAILED | The storage backend could not read or write
Config   | INVALID_CONFIG     | Configuration file failed validation

Every class carries a ``code`` class attribute and keeps its context as
instance attributes so the JSON log formatter can emit them as fields.
"""


class ShopbooksError(Exception):
    """
    Base exception for all shopbooks errors.

    All subclasses have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "SHOPBOOKS_ERROR"


# Record exceptions


class RecordError(ShopbooksError):
    """Base exception for finance record errors."""

    code: str = "RECORD_ERROR"


class InvalidRecordError(RecordError):
    """A record field holds a value the ledger cannot accept."""

    code: str = "INVALID_RECORD"

    def __init__(self, record_type: str, field: str, value: object, reason: str):
        self.record_type = record_type
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {record_type}.{field}={value!r}: {reason}")


# State exceptions


class StateError(ShopbooksError):
    """Base exception for persisted state errors."""

    code: str = "STATE_ERROR"


class StateLoadError(StateError):
    """The persisted finance blob could not be decoded."""

    code: str = "STATE_LOAD_FAILED"

    def __init__(self, storage_key: str, reason: str):
        self.storage_key = storage_key
        self.reason = reason
        super().__init__(f"Cannot load finance state '{storage_key}': {reason}")


class StateStoreError(StateError):
    """The storage backend failed to read or write."""

    code: str = "STATE_STORE_FAILED"

    def __init__(self, storage_key: str, operation: str, reason: str):
        self.storage_key = storage_key
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"State store {operation} failed for '{storage_key}': {reason}"
        )


# Configuration exceptions


class ConfigError(ShopbooksError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """A configuration value failed validation."""

    code: str = "INVALID_CONFIG"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
