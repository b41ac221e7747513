from unittest.mock import MagicMock

from app.storage.attachments import AttachmentManager
from app.storage.redis_storage import RedisAssetStorage


def _storage():
    client = MagicMock()
    return RedisAssetStorage(client, prefix="test:img:"), client


def test_write_and_read_use_prefixed_keys():
    storage, client = _storage()
    client.get.return_value = b"data"

    storage.write("a.png", b"data")

    client.set.assert_called_once_with("test:img:a.png", b"data")
    assert storage.read("a.png") == b"data"
    client.get.assert_called_once_with("test:img:a.png")


def test_missing_key_reads_as_none():
    storage, client = _storage()
    client.get.return_value = None
    client.exists.return_value = 0

    assert storage.read("gone.png") is None
    assert storage.exists("gone.png") is False


def test_delete_of_missing_key_is_quiet():
    storage, client = _storage()
    client.delete.return_value = 0

    storage.delete("gone.png")

    client.delete.assert_called_once_with("test:img:gone.png")


def test_list_refs_strips_prefix():
    storage, client = _storage()
    client.scan_iter.return_value = iter([b"test:img:a.png", "test:img:b.jpg"])

    assert sorted(storage.list_refs()) == ["a.png", "b.jpg"]
    client.scan_iter.assert_called_once_with(match="test:img:*")


def test_manager_replace_over_redis_backend():
    storage, client = _storage()
    manager = AttachmentManager(storage)
    try:
        new_ref = manager.replace("old.png", b"new", "new.png")
    finally:
        manager.shutdown()

    client.set.assert_called_once_with(f"test:img:{new_ref}", b"new")
    client.delete.assert_called_once_with("test:img:old.png")
