import pytest

from se_migrator.migration.roles import map_staff_role
from se_migrator.models.enums import MemberRole


@pytest.mark.parametrize(
    "title, role",
    [
        ("Head Coach", MemberRole.COACH),
        ("Assistant Coach", MemberRole.COACH),
        ("Team Assistant", MemberRole.ASSISTANT_COACH),
        ("Team Manager", MemberRole.MANAGER),
        ("Club Administrator", MemberRole.ADMIN),
        ("Trainer", MemberRole.STAFF),
        ("", MemberRole.MEMBER),
        ("   ", MemberRole.MEMBER),
        (None, MemberRole.MEMBER),
    ],
)
def test_map_staff_role(title, role):
    assert map_staff_role(title) == role
