import asyncio
import threading
import time
import unittest

from gallery.db import InMemoryDbClient
from gallery.errors import (
    EmptyFile,
    FileTooLarge,
    GalleryStoreError,
    NoFilesProvided,
    UnsupportedFileType,
    UpstreamUploadFailure,
)
from gallery.storage import InMemoryAssetHost
from gallery.uploads import IncomingFile, upload_images, validate_files


def _file(name, data=b"img", content_type="image/jpeg"):
    return IncomingFile(filename=name, content_type=content_type, data=data)


class SlowHost(InMemoryAssetHost):
    """Records how many uploads are in flight at once."""

    def __post_init__(self):
        super().__post_init__()
        self.in_flight = 0
        self.max_in_flight = 0
        self._counter_lock = threading.Lock()

    def upload(self, data, folder, filename=None, content_type=None):
        with self._counter_lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(0.05)
            return super().upload(data, folder, filename, content_type)
        finally:
            with self._counter_lock:
                self.in_flight -= 1


class FlakyDb(InMemoryDbClient):
    def __init__(self, fail_on_push: int):
        super().__init__()
        self.fail_on_push = fail_on_push
        self.pushes = 0

    def push_image(self, url, public_id):
        self.pushes += 1
        if self.pushes == self.fail_on_push:
            raise GalleryStoreError("Failed to save image record")
        return super().push_image(url, public_id)


class ValidateFilesTests(unittest.TestCase):
    def test_empty_batch(self):
        with self.assertRaises(NoFilesProvided):
            validate_files([], enforce_policy=True, max_bytes=10)

    def test_empty_payload(self):
        with self.assertRaises(EmptyFile):
            validate_files([_file("a.jpg", b"")], enforce_policy=False, max_bytes=10)

    def test_type_and_size_policy(self):
        with self.assertRaises(UnsupportedFileType):
            validate_files(
                [_file("a.pdf", content_type="application/pdf")],
                enforce_policy=True,
                max_bytes=10,
            )
        with self.assertRaises(UnsupportedFileType):
            validate_files(
                [_file("a.bin", content_type=None)], enforce_policy=True, max_bytes=10
            )
        with self.assertRaises(FileTooLarge):
            validate_files(
                [_file("a.jpg", b"x" * 11)], enforce_policy=True, max_bytes=10
            )
        validate_files([_file("a.jpg", b"x" * 10)], enforce_policy=True, max_bytes=10)

    def test_policy_off(self):
        validate_files(
            [_file("a.pdf", b"x" * 100, "application/pdf")],
            enforce_policy=False,
            max_bytes=10,
        )


class UploadImagesTests(unittest.TestCase):
    def test_entries_in_input_order(self):
        db = InMemoryDbClient()
        host = InMemoryAssetHost()
        files = [_file(f"{i}.jpg", data=f"img-{i}".encode()) for i in range(5)]

        entries = asyncio.run(upload_images(files, "gallery", db=db, host=host))

        self.assertEqual(len(entries), 5)
        for f, entry in zip(files, entries):
            self.assertEqual(host.assets[entry.public_id], f.data)
            self.assertTrue(entry.public_id.startswith("gallery/"))
        self.assertEqual(
            [e.key for e in db.list_images()], [e.key for e in reversed(entries)]
        )

    def test_fan_out_is_bounded(self):
        db = InMemoryDbClient()
        host = SlowHost()
        files = [_file(f"{i}.jpg") for i in range(6)]

        asyncio.run(upload_images(files, "gallery", db=db, host=host, concurrency=2))

        self.assertLessEqual(host.max_in_flight, 2)
        self.assertEqual(len(db.images), 6)

    def test_host_failure_rolls_back_batch(self):
        db = InMemoryDbClient()
        host = InMemoryAssetHost()
        host.fail_uploads.add("2.jpg")
        files = [_file(f"{i}.jpg") for i in range(4)]

        with self.assertRaises(UpstreamUploadFailure) as ctx:
            asyncio.run(upload_images(files, "gallery", db=db, host=host))

        self.assertIn("2.jpg", ctx.exception.message)
        self.assertEqual(db.images, {})
        self.assertEqual(host.assets, {})
        self.assertEqual(db.orphans, {})

    def test_undeletable_assets_flagged_as_orphans(self):
        db = InMemoryDbClient()
        host = InMemoryAssetHost()
        host.fail_uploads.add("1.jpg")
        host.destroy_result = "error"
        files = [_file("0.jpg"), _file("1.jpg")]

        with self.assertRaises(UpstreamUploadFailure):
            asyncio.run(upload_images(files, "gallery", db=db, host=host))

        orphans = db.list_orphans()
        self.assertEqual(len(orphans), 1)
        self.assertEqual(orphans[0].public_id, next(iter(host.assets)))
        self.assertIsNone(orphans[0].gallery_key)

    def test_store_failure_rolls_back_entries_and_assets(self):
        db = FlakyDb(fail_on_push=2)
        host = InMemoryAssetHost()
        files = [_file(f"{i}.jpg") for i in range(3)]

        with self.assertRaises(GalleryStoreError):
            asyncio.run(upload_images(files, "gallery", db=db, host=host))

        self.assertEqual(db.images, {})
        self.assertEqual(host.assets, {})

    def test_no_files(self):
        with self.assertRaises(NoFilesProvided):
            asyncio.run(
                upload_images(
                    [], "gallery", db=InMemoryDbClient(), host=InMemoryAssetHost()
                )
            )


if __name__ == "__main__":
    unittest.main()
