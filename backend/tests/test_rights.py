# tests/test_rights.py — Pure right resolution, no database
import pytest

from auth import CurrentUser, LinkShareAuth
from errors import InvalidRight
from rights import (
    Right, ListGrantSources, NamespaceGrantSources,
    validate_right, resolve_right, list_grants, namespace_grants, has_right,
)


def _user(user_id: int) -> CurrentUser:
    return CurrentUser(id=user_id, username=f"user{user_id}")


def _link_share(list_id: int, right: int) -> LinkShareAuth:
    return LinkShareAuth(share_id=7, hash="h" * 40, list_id=list_id, right=right, shared_by_id=1)


@pytest.mark.parametrize("value", [0, 1, 2, "1"])
def test_validate_right_accepts_known_values(value):
    assert validate_right(value) == Right(int(value))


@pytest.mark.parametrize("value", [-1, 3, 100, "admin", None, True])
def test_validate_right_rejects_unknown_values(value):
    with pytest.raises(InvalidRight) as exc:
        validate_right(value)
    assert exc.value.code == 9001
    assert exc.value.http_status == 400


def test_resolve_right_takes_maximum():
    assert resolve_right([Right.READ, None, Right.READ_WRITE, Right.READ]) == Right.READ_WRITE


def test_resolve_right_without_grants_is_none():
    assert resolve_right([]) is None
    assert resolve_right([None, None]) is None


def test_resolve_right_stops_at_admin():
    consumed = []

    def grants():
        for g in (Right.READ, Right.ADMIN, Right.READ_WRITE):
            consumed.append(g)
            yield g

    assert resolve_right(grants()) == Right.ADMIN
    assert consumed == [Right.READ, Right.ADMIN]


def test_namespace_owner_is_admin_on_every_list():
    sources = ListGrantSources(list_id=5, list_owner_id=2, namespace_owner_id=1)
    assert resolve_right(list_grants(sources, _user(1))) == Right.ADMIN


def test_list_owner_is_admin():
    sources = ListGrantSources(list_id=5, list_owner_id=2, namespace_owner_id=1)
    assert resolve_right(list_grants(sources, _user(2))) == Right.ADMIN


def test_inherited_namespace_right_applies_to_list():
    sources = ListGrantSources(
        list_id=5, list_owner_id=1, namespace_owner_id=1,
        user_right=Right.READ, namespace_team_rights=[Right.READ_WRITE],
    )
    assert resolve_right(list_grants(sources, _user(3))) == Right.READ_WRITE


def test_stranger_has_no_right():
    sources = ListGrantSources(list_id=5, list_owner_id=1, namespace_owner_id=1)
    assert resolve_right(list_grants(sources, _user(9))) is None


def test_link_share_is_capped_at_read_write():
    sources = ListGrantSources(list_id=5, list_owner_id=1, namespace_owner_id=1)
    assert resolve_right(list_grants(sources, _link_share(5, Right.ADMIN))) == Right.READ_WRITE
    assert resolve_right(list_grants(sources, _link_share(5, Right.READ))) == Right.READ


def test_link_share_for_another_list_gets_nothing():
    sources = ListGrantSources(list_id=5, list_owner_id=1, namespace_owner_id=1)
    assert resolve_right(list_grants(sources, _link_share(6, Right.READ_WRITE))) is None


def test_link_share_never_gets_namespace_rights():
    sources = NamespaceGrantSources(namespace_id=1, owner_id=1, user_right=Right.ADMIN)
    assert resolve_right(namespace_grants(sources, _link_share(5, Right.ADMIN))) is None


def test_link_share_id_is_negative():
    share = _link_share(5, Right.READ)
    assert share.get_id() == -7
    assert share.id == -7


def test_has_right():
    assert has_right(Right.ADMIN, Right.READ)
    assert has_right(Right.READ_WRITE, Right.READ_WRITE)
    assert not has_right(Right.READ, Right.READ_WRITE)
    assert not has_right(None, Right.READ)
