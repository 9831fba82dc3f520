"""Runtime layer: events, cache, retry, engine and logging."""
