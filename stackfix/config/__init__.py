"""Settings and stack.yml loading."""
