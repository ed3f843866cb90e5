"""Business logic for the Tourism Hub API (one service class per feature)."""
