"""Web endpoints: SMS webhook, metrics and status."""
