import os

from doclib.tasks.storage import _reclaim


class TestReclaim:
    def test_skips_referenced_paths(self, db_session, make_file, upload, storage):
        item = make_file()
        asset = upload(item.versions[0].id)
        loose = storage.put(b"orphan", "loose.pdf")
        removed = _reclaim(db_session, [asset.path, loose.path])
        assert removed == 1
        assert os.path.exists(os.path.join(storage.root, asset.path))
        assert not os.path.exists(os.path.join(storage.root, loose.path))
