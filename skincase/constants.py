"""
skincase.constants — Shared Constants
======================================

Single source of truth for permission names and economy defaults.
Import from here instead of duplicating in routes and services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Permissions checked by the permission gate
# ---------------------------------------------------------------------------
PERM_MANAGE_USERS = "users.manage"
PERM_BAN_USERS = "users.ban"
PERM_MANAGE_XCOINS = "xcoins.manage"
PERM_MANAGE_BATTLEPASS = "battlepass.manage"

ALL_PERMISSIONS: frozenset[str] = frozenset({
    PERM_MANAGE_USERS,
    PERM_BAN_USERS,
    PERM_MANAGE_XCOINS,
    PERM_MANAGE_BATTLEPASS,
})


# ---------------------------------------------------------------------------
# Economy
# ---------------------------------------------------------------------------
STARTING_XCOINS = 1000
MAX_XCOINS_AMOUNT = 1_000_000

# Notifications expire after this many days
NOTIFICATION_TTL_DAYS = 30

# Leaderboard hard cap regardless of the requested limit
LEADERBOARD_MAX = 100
