"""配额准入与原子增量的单元测试。"""

import pytest

from app.packages.cloudstore.core.enums import ErrorKind
from app.packages.cloudstore.core.exceptions import StorageError
from app.packages.cloudstore.crud.users import user_crud
from app.packages.cloudstore.db import session as db_session
from app.packages.cloudstore.services.quota_service import QuotaLedger
from app.packages.cloudstore.utils.formatting import format_bytes

ledger = QuotaLedger(user_crud)


def test_admission_allows_exact_fit(make_user):
    user = make_user(storage_limit=1000, storage_used=400)

    assert ledger.check_admission(user, 600).allowed
    denied = ledger.check_admission(user, 601)
    assert not denied.allowed
    assert denied.reason is ErrorKind.OVER_QUOTA


def test_ensure_admission_raises_over_quota(make_user):
    user = make_user(storage_limit=100, storage_used=90)

    with pytest.raises(StorageError) as exc_info:
        ledger.ensure_admission(user, 11)

    assert exc_info.value.kind is ErrorKind.OVER_QUOTA
    assert exc_info.value.status_code == 400
    assert exc_info.value.data["kind"] == "over_quota"


def test_get_user_missing_is_not_found(db_session_fixture):
    with pytest.raises(StorageError) as exc_info:
        ledger.get_user(db_session_fixture, 987654321)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert exc_info.value.status_code == 404


def test_commit_is_atomic_delta_clamped_at_zero(db_session_fixture, make_user):
    user = make_user(storage_limit=1000, storage_used=100)

    ledger.commit(db_session_fixture, user.id, 50)
    db_session_fixture.refresh(user)
    assert user.storage_used == 150

    ledger.commit(db_session_fixture, user.id, -400)
    db_session_fixture.refresh(user)
    assert user.storage_used == 0


def test_commit_does_not_overwrite_concurrent_increments(db_session_fixture, make_user):
    """两个会话基于旧快照各自提交增量，结果应为两者之和。"""
    user = make_user(storage_limit=1000, storage_used=0)
    other = db_session.SessionLocal()
    try:
        stale = other.get(type(user), user.id)
        assert stale.storage_used == 0
        ledger.commit(db_session_fixture, user.id, 30)
        ledger.commit(other, user.id, 20)
    finally:
        other.close()

    db_session_fixture.refresh(user)
    assert user.storage_used == 50


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 ** 3, "5 GB"),
    ],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected
