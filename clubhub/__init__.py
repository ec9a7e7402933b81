"""
ClubHub — Membership, Tasks & Attendance for Student Clubs
============================================================
Members claim project tasks and earn points when a manager signs off, check
in to events by QR code, complete recurring duties, and climb a shared
leaderboard.  Every point comes from one row in an append-only ledger.

Package layout::

    clubhub/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Points formula, amplifier bounds, calendar helpers
    ├── errors.py          # Domain errors → {"error", "message"} responses
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + thread-offload helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default categories and recurring tasks
    ├── engine/
    │   ├── permissions.py # Role sets per action + page-route gate
    │   ├── lifecycle.py   # Task state machine
    │   └── identity.py    # CurrentUser passed into every service call
    ├── services/
    │   ├── points_service.py     # Ledger credits, leaderboard, stats
    │   ├── task_service.py       # Task CRUD + race-safe transitions
    │   ├── event_service.py      # Events, registration, approval, QR check-in
    │   ├── recurring_service.py  # Daily recurring tasks + weekly check-in
    │   ├── project_service.py    # Projects and categories
    │   ├── user_service.py       # Provisioning, role lookup, role changes
    │   └── audit_service.py      # admin_log helpers
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # OAuth2 → session JWT cookie, intent cookie
        ├── middleware.py  # Page-route redirects
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"
