"""Challenge lifecycle, progress and leaderboard engine."""
