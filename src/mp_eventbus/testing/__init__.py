"""Testing – in-memory fakes and pytest fixtures for code built on mp_eventbus."""
