import pytest

from tenantdesk.core.errors import ValidationFailure
from tenantdesk.services.blobstore import LocalBlobStore, sanitize_filename


def test_sanitize_filename():
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("screen shot (1).png") == "screen_shot_1_.png"
    assert sanitize_filename(None) == "file"
    assert sanitize_filename("...") == "file"


def test_save_and_delete(tmp_path):
    store = LocalBlobStore(root=tmp_path, max_bytes=1024)
    blob = store.save("log file.txt", b"hello")
    assert blob.size == 5
    assert blob.original_name == "log file.txt"
    assert blob.url == f"/uploads/{blob.filename}"
    assert (tmp_path / blob.filename).read_bytes() == b"hello"

    assert store.delete(blob.filename) is True
    assert store.delete(blob.filename) is False


def test_size_cap(tmp_path):
    store = LocalBlobStore(root=tmp_path, max_bytes=4)
    with pytest.raises(ValidationFailure):
        store.save("big.bin", b"12345")
    assert list(tmp_path.iterdir()) == []
