"""Document review lifecycle rules.

    UPLOADED -> READYFORREVIEW -> REVIEWED -> WITHDRAWN
                                     ^            |
                                     +------------+

One table maps each permitted (from, to) edge to the roles that may take
it. CASEADMIN may move a document between any two statuses. Holding any one
authorized role is enough; every edge missing from the table is refused
regardless of role.
"""

from collections.abc import Iterable

from app.models.case import CaseRole
from app.models.document import DocumentStatus
from app.services.exceptions import InvalidStatusError

_S = DocumentStatus
_R = CaseRole

TRANSITION_RULES: dict[tuple[DocumentStatus, DocumentStatus], frozenset[CaseRole]] = {
    (_S.UPLOADED, _S.READYFORREVIEW): frozenset({_R.DISCLOSER}),
    (_S.READYFORREVIEW, _S.REVIEWED): frozenset({_R.DISCLOSER, _R.REVIEWER}),
    (_S.REVIEWED, _S.WITHDRAWN): frozenset({_R.DISCLOSER, _R.REVIEWER}),
    (_S.WITHDRAWN, _S.REVIEWED): frozenset({_R.DISCLOSER, _R.REVIEWER}),
}

UNRESTRICTED_ROLES: frozenset[CaseRole] = frozenset({_R.CASEADMIN})

# Roles that see documents in every status
FULL_VISIBILITY_ROLES: frozenset[CaseRole] = frozenset({_R.DISCLOSER, _R.REVIEWER, _R.CASEADMIN})

DISCLOSEE_VISIBLE_STATUSES: frozenset[DocumentStatus] = frozenset({_S.REVIEWED})


def parse_status(value: object) -> DocumentStatus:
    """Parse a requested status.

    Raises:
        InvalidStatusError: If the value is not a DocumentStatus name.
    """
    if isinstance(value, DocumentStatus):
        return value
    try:
        return DocumentStatus(value)
    except ValueError:
        raise InvalidStatusError(value, [s.value for s in DocumentStatus]) from None


def can_transition(
    current: DocumentStatus,
    requested: DocumentStatus,
    roles: Iterable[CaseRole],
) -> bool:
    """Whether a caller holding ``roles`` may move a document from current to requested."""
    role_set = frozenset(roles)
    if role_set & UNRESTRICTED_ROLES:
        return True
    return bool(TRANSITION_RULES.get((current, requested), frozenset()) & role_set)


def available_transitions(
    current: DocumentStatus,
    roles: Iterable[CaseRole],
) -> list[DocumentStatus]:
    """Statuses the caller may move a document to, excluding the current one."""
    role_set = frozenset(roles)
    return [
        status
        for status in DocumentStatus
        if status is not current and can_transition(current, status, role_set)
    ]


def visible_statuses(roles: Iterable[CaseRole]) -> frozenset[DocumentStatus]:
    role_set = frozenset(roles)
    if role_set & FULL_VISIBILITY_ROLES:
        return frozenset(DocumentStatus)
    if _R.DISCLOSEE in role_set:
        return DISCLOSEE_VISIBLE_STATUSES
    return frozenset()


def can_view(status: DocumentStatus, roles: Iterable[CaseRole]) -> bool:
    """Read-time visibility of a document in ``status`` for a role set."""
    return status in visible_statuses(roles)
