"""User interfaces for firmapdf (command line)."""
