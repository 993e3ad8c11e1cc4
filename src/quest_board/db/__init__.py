"""SQLite persistence for sessions, players, registrations and their history."""
