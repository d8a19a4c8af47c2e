import time
from unittest import TestCase

import jwt

from reelstudio.common.services.storage_service import IMAGES_BUCKET, VIDEOS_BUCKET, StorageError

from .helpers import temp_storage


class ObjectStorageTests(TestCase):
    def setUp(self):
        self.storage = temp_storage(self)

    def test_upload_download_remove(self):
        self.storage.upload(VIDEOS_BUCKET, "team-1/v.mp4", b"abc")
        self.assertEqual(self.storage.download(VIDEOS_BUCKET, "team-1/v.mp4"), b"abc")
        self.storage.upload(VIDEOS_BUCKET, "team-1/v.mp4", b"xyz")
        self.assertEqual(self.storage.download(VIDEOS_BUCKET, "team-1/v.mp4"), b"xyz")
        self.assertEqual(self.storage.remove(VIDEOS_BUCKET, ["team-1/v.mp4", "team-1/missing.mp4"]), 1)
        self.assertFalse(self.storage.exists(VIDEOS_BUCKET, "team-1/v.mp4"))

    def test_no_upsert_refuses_overwrite(self):
        self.storage.upload(IMAGES_BUCKET, "team-1/a.png", b"1")
        with self.assertRaises(StorageError):
            self.storage.upload(IMAGES_BUCKET, "team-1/a.png", b"2", upsert=False)

    def test_path_traversal_is_rejected(self):
        with self.assertRaises(StorageError):
            self.storage.upload(VIDEOS_BUCKET, "../escape.mp4", b"x")
        with self.assertRaises(StorageError):
            self.storage.download("other-bucket", "a.mp4")

    def test_signed_url_round_trip(self):
        url = self.storage.create_signed_url(IMAGES_BUCKET, "team-1/a.png", 60)
        token = url.rsplit("/", 1)[-1]
        self.assertEqual(self.storage.verify_token(token), (IMAGES_BUCKET, "team-1/a.png"))

    def test_expired_or_forged_tokens_are_rejected(self):
        now = int(time.time())
        expired = jwt.encode(
            {"bkt": IMAGES_BUCKET, "path": "team-1/a.png", "iat": now - 120, "exp": now - 60},
            "test-secret",
            algorithm="HS256",
        )
        with self.assertRaises(ValueError):
            self.storage.verify_token(expired)
        forged = jwt.encode({"bkt": IMAGES_BUCKET, "path": "team-1/a.png"}, "wrong-secret", algorithm="HS256")
        with self.assertRaises(ValueError):
            self.storage.verify_token(forged)
