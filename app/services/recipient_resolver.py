"""
Recipient resolution for survey result emails.

Turns the request's recipient list (literal addresses mixed with the role
tokens director / manager / instructor / admin) into concrete, de-duplicated
ResolvedRecipient entries.

Sources are applied in a fixed order and the first source to claim an
address wins its role and instructor link:
1. Role tokens, in request order
2. Literal addresses, in request order

Resolution only reads. A failed lookup is printed and contributes nothing.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Profile, UserRole
from app.services.survey_reader import InstructorRef

ROLE_TOKENS = ("director", "manager", "instructor", "admin")


@dataclass
class ResolvedRecipient:
    email: str  # normalized: trimmed, lower-case
    role: Optional[str] = None
    instructor_id: Optional[str] = None
    source: str = "email"  # role token that produced it, or "email"


def normalize_email(raw) -> str:
    return str(raw).strip().lower()


def pick_role(roles: Sequence[str]) -> Optional[str]:
    """director beats admin beats the first listed role."""
    if not roles:
        return None
    if "director" in roles:
        return "director"
    if "admin" in roles:
        return "admin"
    return roles[0]


def partition_recipients(recipients: Iterable) -> "tuple[List[str], List[str]]":
    """
    Split raw recipients into (literal emails, role tokens).

    Both lists keep request order and drop blanks and repeats.
    """
    emails: List[str] = []
    roles: List[str] = []
    for raw in recipients or []:
        if raw is None:
            continue
        value = normalize_email(raw)
        if not value:
            continue
        if value in ROLE_TOKENS:
            if value not in roles:
                roles.append(value)
        elif value not in emails:
            emails.append(value)
    return emails, roles


# ============ DIRECTORY LOOKUPS ============

def _user_ids_with_roles(db: Session, roles: List[str]) -> List[str]:
    try:
        rows = db.query(UserRole.user_id).filter(UserRole.role.in_(roles)).all()
    except SQLAlchemyError as e:
        print(f"   ⚠️ Role lookup failed for {roles}: {e}")
        db.rollback()
        return []
    return list(dict.fromkeys(r[0] for r in rows))


def _profiles_by_ids(db: Session, user_ids: List[str]) -> List[Profile]:
    if not user_ids:
        return []
    try:
        return db.query(Profile).filter(
            Profile.id.in_(user_ids),
            Profile.email.isnot(None)
        ).order_by(Profile.id).all()
    except SQLAlchemyError as e:
        print(f"   ⚠️ Profile lookup failed: {e}")
        db.rollback()
        return []


def _profiles_by_emails(db: Session, emails: List[str]) -> List[Profile]:
    if not emails:
        return []
    try:
        return db.query(Profile).filter(
            func.lower(Profile.email).in_(emails)
        ).order_by(Profile.id).all()
    except SQLAlchemyError as e:
        print(f"   ⚠️ Profile lookup by email failed: {e}")
        db.rollback()
        return []


def _roles_by_user(db: Session, user_ids: List[str]) -> Dict[str, List[str]]:
    if not user_ids:
        return {}
    try:
        rows = db.query(UserRole.user_id, UserRole.role).filter(
            UserRole.user_id.in_(user_ids)
        ).order_by(UserRole.id).all()
    except SQLAlchemyError as e:
        print(f"   ⚠️ Role membership lookup failed: {e}")
        db.rollback()
        return {}
    by_user: Dict[str, List[str]] = {}
    for user_id, role in rows:
        by_user.setdefault(user_id, []).append(role)
    return by_user


# ============ RESOLUTION ============

def resolve_recipients(
    db: Session,
    recipients: Iterable,
    instructors: List[InstructorRef],
    target_instructor_ids: Optional[Iterable[str]] = None,
    include_admin: bool = False
) -> List[ResolvedRecipient]:
    """
    Expand role tokens and literal addresses into unique recipients.

    Args:
        db: Database session (read-only use)
        recipients: Raw request recipients (emails and/or role tokens)
        instructors: Instructors discovered for the survey being reported
        target_instructor_ids: Narrow the "instructor" token to these ids
        include_admin: Whether the "admin" token expands to anyone

    Returns:
        Recipients in resolution order, unique by normalized email
    """
    raw_emails, role_tokens = partition_recipients(recipients)
    targets = set(target_instructor_ids) if target_instructor_ids else None

    if "admin" in role_tokens and not include_admin:
        print("   ℹ️ 'admin' token accepted but excluded from delivery")

    # Survey instructors first: their link beats any profile link
    email_to_instructor: Dict[str, str] = {}
    for inst in instructors:
        if inst.email:
            email_to_instructor.setdefault(normalize_email(inst.email), inst.id)
    survey_instructor_emails = set(email_to_instructor)

    # Profiles reachable from directory role tokens
    directory_roles = [
        r for r in role_tokens
        if r in ("director", "manager") or (r == "admin" and include_admin)
    ]
    role_profiles: Dict[str, List[Profile]] = {}
    for role in directory_roles:
        role_profiles[role] = _profiles_by_ids(db, _user_ids_with_roles(db, [role]))

    # Profiles of literal addresses and survey instructors, for role/link lookup
    known: Dict[str, Profile] = {}
    for plist in role_profiles.values():
        for p in plist:
            known.setdefault(p.id, p)
    lookup_emails = list(dict.fromkeys(raw_emails + list(email_to_instructor)))
    for p in _profiles_by_emails(db, lookup_emails):
        known.setdefault(p.id, p)

    roles_by_user = _roles_by_user(db, list(known))

    email_to_role: Dict[str, str] = {}
    for p in known.values():
        if not p.email:
            continue
        email = normalize_email(p.email)
        role = pick_role(roles_by_user.get(p.id, []))
        if role is None and p.instructor_id:
            role = "instructor"
        if role is None:
            continue
        current = email_to_role.get(email)
        if current is None or pick_role([current, role]) != current:
            email_to_role[email] = role
        if p.instructor_id and email not in email_to_instructor:
            email_to_instructor[email] = p.instructor_id

    resolved: "OrderedDict[str, ResolvedRecipient]" = OrderedDict()

    def claim(email: str, role: Optional[str], instructor_id: Optional[str], source: str):
        if not email or email in resolved:
            return
        resolved[email] = ResolvedRecipient(
            email=email,
            role=role,
            instructor_id=instructor_id,
            source=source
        )

    # Source 1: role tokens in request order
    for token in role_tokens:
        if token == "instructor":
            for inst in instructors:
                if targets is not None and inst.id not in targets:
                    continue
                if inst.email:
                    email = normalize_email(inst.email)
                    claim(email, email_to_role.get(email, "instructor"), inst.id, token)
        elif token in role_profiles:
            for p in role_profiles[token]:
                email = normalize_email(p.email)
                claim(
                    email,
                    email_to_role.get(email, token),
                    email_to_instructor.get(email),
                    token
                )

    # Source 2: literal addresses in request order
    for email in raw_emails:
        role = email_to_role.get(email)
        if role is None and email in survey_instructor_emails:
            role = "instructor"
        claim(email, role, email_to_instructor.get(email), "email")

    result = list(resolved.values())
    print(f"   👥 Resolved {len(result)} recipients from {len(raw_emails)} addresses + roles {role_tokens}")
    return result
