"""Processing and orchestration of bookmark runs."""
