"""Core: lifecycle rules, ports, errors and view sessions."""
