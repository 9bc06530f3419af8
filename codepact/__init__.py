"""codepact: coding-challenge commitments with daily targets and penalties.

Modules:
    - challenges: lifecycle state machine, progress, membership guard,
      leaderboard, service, REST API and completion sweep
    - repositories: unit of work and repository errors
    - infrastructure: database models/session, periodic scheduler
    - shared: logging, datetime helpers, base schemas
"""

__version__ = "0.1.0"
