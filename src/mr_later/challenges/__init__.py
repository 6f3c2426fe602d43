"""Shared challenges and the signed-in user's memberships."""
