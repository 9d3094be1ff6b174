"""Engine collaborators: handlers, execution engine and external service clients."""
