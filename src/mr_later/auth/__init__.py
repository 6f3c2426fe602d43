"""
Identity subsystem.

Components:
- auth_models.py: Session, User, Profile
- auth_store.py: who is signed in, profile, session-change listener
- secure_login.py: cached credential for quick unlock, onboarding and login-method flags
"""
