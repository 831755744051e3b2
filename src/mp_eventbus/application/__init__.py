"""Application layer – in-process dispatch, event bus facade, outbox relay."""
