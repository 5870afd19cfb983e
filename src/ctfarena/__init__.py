"""CTF Arena API."""
