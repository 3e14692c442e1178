"""
Ethics DAO Constants

This module consolidates the global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast

from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW DEFINE THE STORED WIRE FORMAT. CHANGING THEM MAKES
# EXISTING LEDGER DATA UNREADABLE.

# ==================================================================================
# TALLY PACKING
# ==================================================================================
TALLY_TOKEN_PREFIX = 'FHE-'
TALLY_COUNTER_CEILING = 99  # Highest value a single counter may hold
TALLY_APPROVE_MULTIPLIER = 10000
TALLY_REJECT_MULTIPLIER = 100
TALLY_MAX_PACKED_VALUE = (
    TALLY_COUNTER_CEILING * TALLY_APPROVE_MULTIPLIER
    + TALLY_COUNTER_CEILING * TALLY_REJECT_MULTIPLIER
    + TALLY_COUNTER_CEILING
)


# ==================================================================================
# LEDGER KEYS
# ==================================================================================
PROPOSAL_INDEX_KEY = 'proposal_keys'
PROPOSAL_KEY_PREFIX = 'proposal_'
PROPOSAL_VOTERS_KEY_PREFIX = 'proposal_voters_'
PROPOSAL_ID_PREFIX = 'prop'
PROPOSAL_ID_SUFFIX_LENGTH = 4

# Retry budgets for compare-and-set writes
INDEX_CAS_RETRIES = 8
VOTE_CAS_RETRIES = 8


# ==================================================================================
# REVEAL SESSION
# ==================================================================================
SESSION_DURATION_DAYS = 30
SESSION_PUBLIC_KEY_HEX_LENGTH = 2000


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        # ast.literal_eval expects "True"/"False"
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
