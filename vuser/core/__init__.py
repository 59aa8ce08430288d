"""Virtual user core components."""
