# ==============================================================================
# commission_admin/matrix/schema.py
# ------------------------------------------------------------------------------
# Roles, bounds and key types of the commission matrix.
# This module is the single source of truth for what a valid cell looks like.
# ==============================================================================

import enum
from collections import namedtuple

from .exceptions import MatrixValidationError


class Role(enum.IntEnum):
    """Compensation tiers. The integers are shared with other systems and must not change."""
    ADVISOR = 3
    LEADER_1 = 4
    LEADER_2 = 5
    SENIOR_PARTNER = 6


ROLE_IDS = (Role.ADVISOR, Role.LEADER_1, Role.LEADER_2, Role.SENIOR_PARTNER)

ROLE_NAMES = {
    Role.ADVISOR: 'ADVISOR',
    Role.LEADER_1: 'LEADER 1',
    Role.LEADER_2: 'LEADER 2',
    Role.SENIOR_PARTNER: 'SENIOR PARTNER',
}

MIN_YEAR = 1
MAX_YEAR = 10
MIN_RATE = 0
MAX_RATE = 100


class CellState(enum.Enum):
    UNSAVED_NEW = 'unsaved-new'
    SYNCED = 'synced'
    DELETE_PENDING = 'delete-pending'


# Lookup keys. Tuples, so a premium term may contain any character.
CellKey = namedtuple('CellKey', ['premium_term', 'year'])
ChangeKey = namedtuple('ChangeKey', ['premium_term', 'year', 'role'])


def role_name(role_id):
    """Display label for a role id; unknown ids are labelled 'Unknown'."""
    try:
        return ROLE_NAMES[Role(role_id)]
    except ValueError:
        return 'Unknown'


def is_valid_year(year):
    return isinstance(year, int) and not isinstance(year, bool) and MIN_YEAR <= year <= MAX_YEAR


def validate_year(year):
    if not is_valid_year(year):
        raise MatrixValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}, got {year!r}")
    return year


def validate_role(role):
    try:
        return Role(role)
    except ValueError:
        raise MatrixValidationError(f"Unknown role id {role!r}; expected one of {[int(r) for r in ROLE_IDS]}")


def validate_rate(rate):
    if isinstance(rate, bool) or not isinstance(rate, (int, float)):
        raise MatrixValidationError(f"Rate must be a number, got {rate!r}")
    if not MIN_RATE <= rate <= MAX_RATE:
        raise MatrixValidationError(f"Rate must be between {MIN_RATE} and {MAX_RATE}, got {rate!r}")
    return float(rate)


def validate_term(premium_term):
    if not isinstance(premium_term, str) or not premium_term.strip():
        raise MatrixValidationError("Premium term is required")
    return premium_term
