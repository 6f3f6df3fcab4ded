from typing import Optional

from se_migrator.models.enums import MemberRole

# Checked in order; the first substring found in the title wins
STAFF_ROLE_KEYWORDS = (
    ("coach", MemberRole.COACH),
    ("assistant", MemberRole.ASSISTANT_COACH),
    ("manager", MemberRole.MANAGER),
    ("admin", MemberRole.ADMIN),
)


def map_staff_role(title: Optional[str]) -> MemberRole:
    """Map a SportsEngine staff title to a group member role."""
    if not title or not title.strip():
        return MemberRole.MEMBER
    lowered = title.lower()
    for keyword, role in STAFF_ROLE_KEYWORDS:
        if keyword in lowered:
            return role
    return MemberRole.STAFF
