"""One whitelisting session: lock, backups, state machine and prompts."""
