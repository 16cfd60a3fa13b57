"""
SkinCase — Backend core for the SkinCase case-opening platform
================================================================
Simulated CS2 case openings run on a virtual currency (Xcoins) and a
seasonal battlepass.  This package holds the HTTP API, the security
middleware stack that guards it, and the battlepass and achievement
progression engines.

Package layout::

    skincase/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Permissions, economy defaults
    ├── errors.py          # Error taxonomy (HTTP + battlepass domain)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default Season 1 battlepass + achievements
    ├── engine/
    │   ├── progression.py # Tier ladder, level lookup, claim rules
    │   ├── missions.py    # Mission requirement evaluation
    │   └── achievements.py # Achievement requirement handlers
    ├── services/
    │   ├── battlepass_service.py   # XP grants, claims, premium purchase
    │   ├── achievement_service.py  # Achievement unlocks + rewards
    │   ├── user_service.py         # Accounts, bans, Xcoins ledger
    │   └── notification_service.py # In-app notifications
    └── api/
        ├── main.py        # FastAPI app + middleware stack
        ├── rate_limit.py  # Per-policy fixed-window limiters
        ├── headers.py     # CSP / hardening headers
        ├── sanitize.py    # Input sanitizer
        ├── validation.py  # Declarative rule sets
        ├── csrf.py        # Session-bound CSRF tokens
        ├── permissions.py # Ban + permission gate
        └── routes/        # Battlepass, achievements, Xcoins, admin, user endpoints
"""

__version__ = "0.1.0"
