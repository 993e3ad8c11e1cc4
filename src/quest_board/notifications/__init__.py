"""Best-effort player notifications: templates, email transports and the outbox dispatcher."""
