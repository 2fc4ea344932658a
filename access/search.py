"""
Grant-target search: who can still be given access, filtered by a query.

A single letter matches name prefixes; longer queries match anywhere.
"""
from typing import Iterable, List

from state import AccessGrant, Role, UserSummary


def _lower(value) -> str:
    return (value or "").lower()


def _company_name(user: UserSummary) -> str:
    return _lower(user.company_name or user.username)


def _graduate_sort_key(user: UserSummary):
    return (_lower(user.last_name or user.username), _lower(user.first_name))


def _matches_graduate(user: UserSummary, query: str) -> bool:
    last_name = _lower(user.last_name)
    first_name = _lower(user.first_name)
    username = _lower(user.username)
    if len(query) == 1:
        return any(name.startswith(query) for name in (last_name, first_name, username))
    full_name = f"{last_name} {first_name}".strip()
    return any(query in name for name in (last_name, first_name, username, full_name))


def _matches_employer(user: UserSummary, query: str) -> bool:
    name = _company_name(user)
    if len(query) == 1:
        return name.startswith(query)
    return query in name


def filter_grant_targets(
    users: Iterable[UserSummary],
    granted_by_me: Iterable[AccessGrant],
    query: str = "",
    viewer_role: Role = Role.GRADUATE,
) -> List[UserSummary]:
    """Users not yet granted access, matching ``query``, in display order.

    Graduates pick employers (sorted by company name); employers pick
    graduates (sorted by last name, then first name).
    """
    already = {grant.grantee_id for grant in granted_by_me}
    candidates = [user for user in users if user.id not in already]
    query = query.strip().lower()

    if viewer_role == Role.GRADUATE:
        if query:
            candidates = [user for user in candidates if _matches_employer(user, query)]
        return sorted(candidates, key=_company_name)

    if query:
        candidates = [user for user in candidates if _matches_graduate(user, query)]
    return sorted(candidates, key=_graduate_sort_key)
