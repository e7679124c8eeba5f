"""Care bundle recommendation engine."""
