import os

import pytest
from sqlalchemy.orm import sessionmaker

from doclib.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from doclib.models import Download, FileItem, FileVersion, FileVersionAsset
from doclib.schemas.files import FileVersionCreate, Translation
from doclib.services.files import FileAssets, FileItems, FileVersions
from tests.mocks import published_types


def _new_version(db, actor, item, **kwargs):
    return FileVersions.create(db, actor, item.id, FileVersionCreate(**kwargs))


def _assert_current_is_live(db, item_id):
    db.expire_all()
    item = db.get(FileItem, item_id)
    if item.current_version_id is None:
        return
    current = db.get(FileVersion, item.current_version_id)
    assert current.file_item_id == item_id
    assert current.deleted_at is None


class TestFileVersionsCreate:
    def test_numbers_increase(self, db_session, admin, make_file):
        item = make_file()
        v2 = _new_version(db_session, admin, item, comment=" second ")
        v3 = _new_version(db_session, admin, item)
        assert (v2.version_number, v3.version_number) == (2, 3)
        assert v2.comment == "second"

    def test_numbers_never_reused_after_delete(self, db_session, admin, make_file):
        item = make_file()
        v2 = _new_version(db_session, admin, item)
        _new_version(db_session, admin, item)
        FileVersions.delete(db_session, admin, v2.id)
        FileVersions.force_delete(db_session, admin, v2.id)
        v4 = _new_version(db_session, admin, item)
        assert v4.version_number == 4

    def test_highest_number_not_reused_after_force_delete(
        self, db_session, admin, make_file, upload
    ):
        item = make_file()
        upload(item.versions[0].id)
        v2 = _new_version(db_session, admin, item)
        FileVersions.delete(db_session, admin, v2.id)
        FileVersions.force_delete(db_session, admin, v2.id)
        v3 = _new_version(db_session, admin, item)
        assert v3.version_number == 3
        assert db_session.get(FileItem, item.id).last_version_number == 3

    def test_interleaved_sessions_get_distinct_increasing_numbers(
        self, engine, db_session, admin, make_file
    ):
        item_id = make_file().id
        other = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
        try:
            numbers = []
            for i in range(6):
                session = db_session if i % 2 else other
                version = FileVersions.create(
                    session, admin, item_id, FileVersionCreate()
                )
                numbers.append(version.version_number)
        finally:
            other.close()
        assert numbers == sorted(set(numbers))
        assert numbers == [2, 3, 4, 5, 6, 7]

    def test_with_translations(self, db_session, admin, make_file):
        item = make_file()
        version = _new_version(
            db_session,
            admin,
            item,
            translations=[Translation(lang="en", title="Spring edition")],
        )
        assert [t.title for t in version.translations] == ["Spring edition"]

    def test_rejects_trashed_item(self, db_session, admin, make_file):
        item = make_file()
        FileItems.delete(db_session, admin, item.id)
        with pytest.raises(InvalidStateError):
            _new_version(db_session, admin, item)

    def test_copy_from_current_duplicates_blobs(
        self, db_session, admin, make_file, upload, storage
    ):
        item = make_file()
        source = upload(item.versions[0].id, "ru", b"original", "a.pdf")
        version = _new_version(db_session, admin, item, copy_from_current=True)
        assert len(version.assets) == 1
        copy = version.assets[0]
        assert copy.lang == "ru"
        assert copy.path != source.path
        assert copy.checksum == source.checksum
        with open(os.path.join(storage.root, copy.path), "rb") as fh:
            assert fh.read() == b"original"

    def test_publishes_version_created(self, db_session, admin, make_file, published):
        item = make_file()
        _new_version(db_session, admin, item)
        assert published_types(published)[-1] == "version.created"


class TestFileVersionsSetCurrent:
    def test_switch_current(self, db_session, admin, make_file, published):
        item = make_file()
        v2 = _new_version(db_session, admin, item)
        updated = FileVersions.set_current(db_session, admin, item.id, v2.id)
        assert updated.current_version_id == v2.id
        assert published.call_args.kwargs["payload"] == {"before": None, "after": v2.id}

    def test_version_of_other_item(self, db_session, admin, make_file):
        a = make_file(title="A")
        b = make_file(title="B")
        with pytest.raises(InvalidStateError) as exc:
            FileVersions.set_current(db_session, admin, a.id, b.versions[0].id)
        assert "another file" in exc.value.detail

    def test_deleted_version(self, db_session, admin, make_file):
        item = make_file()
        v2 = _new_version(db_session, admin, item)
        FileVersions.delete(db_session, admin, v2.id)
        with pytest.raises(InvalidStateError):
            FileVersions.set_current(db_session, admin, item.id, v2.id)
        _assert_current_is_live(db_session, item.id)


class TestFileVersionsDelete:
    def test_current_version_scenario(self, db_session, admin, make_file, upload):
        item = make_file()
        v1 = item.versions[0]
        upload(v1.id)
        db_session.expire_all()
        assert FileItems.get(db_session, item.id).current_version_id == v1.id
        v2 = _new_version(db_session, admin, item)

        with pytest.raises(ConflictError) as exc:
            FileVersions.delete(db_session, admin, v1.id)
        assert exc.value.status_code == 409

        FileVersions.set_current(db_session, admin, item.id, v2.id)
        deleted = FileVersions.delete(db_session, admin, v1.id)
        assert deleted.deleted_at is not None
        _assert_current_is_live(db_session, item.id)

    def test_last_live_version(self, db_session, admin, make_file):
        item = make_file()
        with pytest.raises(ConflictError) as exc:
            FileVersions.delete(db_session, admin, item.versions[0].id)
        assert "last version" in exc.value.detail

    def test_already_deleted(self, db_session, admin, make_file):
        item = make_file()
        v2 = _new_version(db_session, admin, item)
        FileVersions.delete(db_session, admin, v2.id)
        with pytest.raises(InvalidStateError):
            FileVersions.delete(db_session, admin, v2.id)

    def test_restore(self, db_session, admin, make_file):
        item = make_file()
        v2 = _new_version(db_session, admin, item)
        FileVersions.delete(db_session, admin, v2.id)
        restored = FileVersions.restore(db_session, admin, v2.id)
        assert restored.deleted_at is None
        with pytest.raises(InvalidStateError):
            FileVersions.restore(db_session, admin, v2.id)

    def test_force_delete_requires_soft_delete(self, db_session, admin, make_file):
        item = make_file()
        v2 = _new_version(db_session, admin, item)
        with pytest.raises(InvalidStateError):
            FileVersions.force_delete(db_session, admin, v2.id)

    def test_force_delete_removes_assets_and_blobs(
        self, db_session, admin, make_file, upload, storage
    ):
        item = make_file()
        upload(item.versions[0].id)
        v2 = _new_version(db_session, admin, item)
        v2_id = v2.id
        asset = upload(v2.id, "en", b"second", "b.pdf")
        blob = os.path.join(storage.root, asset.path)
        FileVersions.delete(db_session, admin, v2.id)
        FileVersions.force_delete(db_session, admin, v2.id)
        assert db_session.get(FileVersion, v2_id) is None
        assert db_session.query(FileVersionAsset).filter_by(file_version_id=v2_id).count() == 0
        assert not os.path.exists(blob)

    def test_force_delete_keeps_download_ledger(
        self, db_session, admin, make_file, upload
    ):
        item = make_file()
        item_id = item.id
        upload(item.versions[0].id)
        v2 = _new_version(db_session, admin, item)
        v2_id = v2.id
        upload(v2_id, "en", b"second", "b.pdf")
        FileItems.download(db_session, admin, item_id, version_id=v2_id)
        FileVersions.delete(db_session, admin, v2_id)
        FileVersions.force_delete(db_session, admin, v2_id)
        db_session.expire_all()
        entry = db_session.query(Download).one()
        assert entry.file_item_id == item_id
        assert entry.file_version_id is None
        assert entry.file_version_asset_id is None


class TestFileVersionsList:
    def test_newest_first_excluding_deleted(self, db_session, admin, make_file):
        item = make_file()
        v1_id = item.versions[0].id
        v2 = _new_version(db_session, admin, item)
        v3 = _new_version(db_session, admin, item)
        FileVersions.delete(db_session, admin, v2.id)
        live = FileVersions.list(db_session, item.id, False, 50, 0)
        every = FileVersions.list(db_session, item.id, True, 50, 0)
        assert [v.id for v in live] == [v3.id, v1_id]
        assert [v.version_number for v in every] == [3, 2, 1]

    def test_unknown_item(self, db_session):
        with pytest.raises(NotFoundError):
            FileVersions.list(db_session, 404, False, 50, 0)


class TestFileAssets:
    def test_first_upload_sets_current(self, db_session, admin, make_file, upload):
        item = make_file()
        asset = upload(item.versions[0].id, "ru", b"0123456789", "report.pdf")
        db_session.expire_all()
        assert FileItems.get(db_session, item.id).current_version_id == item.versions[0].id
        assert asset.size == 10
        assert len(asset.checksum) == 64

    def test_second_version_upload_keeps_current(self, db_session, admin, make_file, upload):
        item = make_file()
        v1 = item.versions[0]
        upload(v1.id)
        v2 = _new_version(db_session, admin, item)
        upload(v2.id)
        db_session.expire_all()
        assert FileItems.get(db_session, item.id).current_version_id == v1.id

    def test_duplicate_language_conflicts(self, db_session, make_file, upload, storage):
        item = make_file()
        upload(item.versions[0].id, "en")
        with pytest.raises(ConflictError):
            upload(item.versions[0].id, "en")

    def test_validation(self, db_session, admin, make_file, storage):
        item = make_file()
        version_id = item.versions[0].id
        with pytest.raises(ValidationError):
            FileAssets.upload(db_session, admin, version_id, "en", b"", "a.pdf", "x")
        with pytest.raises(ValidationError):
            FileAssets.upload(db_session, admin, version_id, "en", b"x", "a.exe", "x")
        with pytest.raises(ValidationError):
            FileAssets.upload(db_session, admin, version_id, "fr", b"x", "a.pdf", "x")

    def test_too_large(self, db_session, admin, make_file, storage):
        item = make_file()
        data = b"x" * (10 * 1024 * 1024 + 1)
        with pytest.raises(ValidationError) as exc:
            FileAssets.upload(
                db_session, admin, item.versions[0].id, "en", data, "big.pdf", "x"
            )
        assert "limit" in exc.value.detail

    def test_failed_commit_discards_blob(
        self, db_session, admin, make_file, storage, monkeypatch
    ):
        item = make_file()
        version_id = item.versions[0].id

        def boom(*args, **kwargs):
            raise RuntimeError("db down")

        monkeypatch.setattr(db_session, "commit", boom)
        with pytest.raises(RuntimeError):
            FileAssets.upload(db_session, admin, version_id, "en", b"x", "a.pdf", "x")
        leftovers = [
            name for _, _, files in os.walk(storage.root) for name in files
        ]
        assert leftovers == []

    def test_soft_delete_and_restore(self, db_session, admin, make_file, upload):
        item = make_file()
        asset = upload(item.versions[0].id, "en")
        FileAssets.delete(db_session, admin, asset.id)
        replacement = upload(item.versions[0].id, "en", b"new", "new.pdf")
        with pytest.raises(ConflictError):
            FileAssets.restore(db_session, admin, asset.id)
        FileAssets.delete(db_session, admin, replacement.id)
        restored = FileAssets.restore(db_session, admin, asset.id)
        assert restored.deleted_at is None

    def test_force_delete(self, db_session, admin, make_file, upload, storage):
        item = make_file()
        asset = upload(item.versions[0].id, "en")
        asset_id = asset.id
        blob = os.path.join(storage.root, asset.path)
        with pytest.raises(InvalidStateError):
            FileAssets.force_delete(db_session, admin, asset.id)
        FileAssets.delete(db_session, admin, asset.id)
        FileAssets.force_delete(db_session, admin, asset.id)
        assert db_session.get(FileVersionAsset, asset_id) is None
        assert not os.path.exists(blob)

    def test_force_delete_keeps_download_ledger(
        self, db_session, admin, make_file, upload
    ):
        item = make_file()
        version_id = item.versions[0].id
        asset_id = upload(version_id, "en").id
        FileItems.download(db_session, admin, item.id)
        FileAssets.delete(db_session, admin, asset_id)
        FileAssets.force_delete(db_session, admin, asset_id)
        db_session.expire_all()
        entry = db_session.query(Download).one()
        assert entry.file_version_id == version_id
        assert entry.file_version_asset_id is None
