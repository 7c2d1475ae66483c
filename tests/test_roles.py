import pytest

from coupongen.roles import ROLES, is_role, satisfies, to_role


@pytest.mark.parametrize(
    "actual,required,ok",
    [
        ("superadmin", "admin", True),
        ("superadmin", "store", True),
        ("admin", "store", True),
        ("admin", "admin", True),
        ("admin", "superadmin", False),
        ("store", "admin", False),
        ("store", "store", True),
    ],
)
def test_role_hierarchy(actual, required, ok):
    assert satisfies(actual, required) is ok


def test_role_parsing():
    assert set(ROLES) == {"superadmin", "admin", "store"}
    assert is_role("admin")
    assert not is_role("cook")
    assert not is_role(None)
    assert to_role(" Store ") == "store"
    with pytest.raises(ValueError):
        to_role("root")
