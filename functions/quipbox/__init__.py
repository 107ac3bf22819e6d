"""
Quipbox backend package.

A small FastAPI service that stores per-user messages (quotes, quips) and
serves one random active message for a user, plus admin routes to register
users and bulk-load messages.
"""
