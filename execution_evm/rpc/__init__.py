"""JSON-RPC transport, authentication and the execution_* facade."""
