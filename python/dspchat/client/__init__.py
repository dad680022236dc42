"""Terminal client: connection, event multiplexing, state machine and UI."""
