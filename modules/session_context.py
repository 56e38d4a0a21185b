"""Per-request view of the signed-in user, built from the Flask session."""
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SessionContext:
    user_id: str
    email: str = ""
    name: str = ""
    role: str = "user"
    profile: dict = field(default_factory=dict)
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    def client_info(self):
        return {"ip": self.ip, "userAgent": self.user_agent}

    @classmethod
    def from_session(cls, session, request=None):
        """None when nobody is signed in."""
        if "user_id" not in session:
            return None
        return cls(
            user_id=session["user_id"],
            email=session.get("user_email", ""),
            name=session.get("user_name", ""),
            role=session.get("user_role", "user"),
            profile=session.get("profile") or {},
            ip=request.remote_addr if request is not None else None,
            user_agent=request.headers.get("User-Agent") if request is not None else None,
        )


def _cacheable(profile):
    # tips are served from the store, keep the cookie small
    return {k: v for k, v in (profile or {}).items() if k != "tips"}


def start_session(session, user_id, email, name, role, profile):
    session.clear()
    session["user_id"] = user_id
    session["user_email"] = email
    session["user_name"] = name
    session["user_role"] = role
    session["profile"] = _cacheable(profile)


def cache_profile(session, profile):
    session["profile"] = _cacheable(profile)
    if profile:
        session["user_name"] = profile.get("name", session.get("user_name", ""))
        session["user_role"] = profile.get("role", session.get("user_role", "user"))
