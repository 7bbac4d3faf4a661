"""Quiz generation, sharing and leaderboard service."""

__version__ = "1.0.0"
