"""Process state, poll loops and network listeners."""
