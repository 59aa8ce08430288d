"""Virtual users: HTTP client, checks and scenario execution."""
