"""
                        Services Module

Business logic behind the auth API, following the hybrid pattern:
each external backend has a Mock (development) and Real (production)
implementation behind a shared interface.

Services:
    - identity: Mock / Supabase / Appwrite identity providers
    - stores: in-memory / SQL tenant and role stores
    - session: the per-session authority
    - onboarding: restaurant creation wizard
    - registry: per-browser-session authority map
"""

from app.services.session import SessionAuthority, SessionState, create_session_authority

__all__ = ["SessionAuthority", "SessionState", "create_session_authority"]
