from io import BytesIO
from unittest import TestCase

from werkzeug.datastructures import FileStorage

from reelstudio.common.services.errors import NotFoundError
from reelstudio.common.services.storage_service import IMAGES_BUCKET
from reelstudio.services import ImageService

from .helpers import memory_session_factory, png_bytes, temp_storage


def upload(data, filename="photo.png"):
    return FileStorage(stream=BytesIO(data), filename=filename, content_type="image/png")


class ImageServiceTests(TestCase):
    def setUp(self):
        self.storage = temp_storage(self)
        self.service = ImageService(self.storage, memory_session_factory())

    def test_save_upload_stores_image(self):
        data = png_bytes()
        image = self.service.save_upload("team-1", upload(data))
        self.assertEqual(image["width"], 512)
        self.assertTrue(image["storage_path"].startswith("team-1/"))
        self.assertTrue(image["storage_path"].endswith(".png"))
        self.assertEqual(self.storage.download(IMAGES_BUCKET, image["storage_path"]), data)
        self.assertEqual(self.service.read_bytes("team-1", image["id"]), data)

    def test_rejects_small_image(self):
        with self.assertRaises(ValueError):
            self.service.save_upload("team-1", upload(png_bytes(size=(100, 100))))

    def test_rejects_unsupported_extension(self):
        with self.assertRaises(ValueError):
            self.service.save_upload("team-1", upload(png_bytes(), filename="photo.gif"))

    def test_rejects_non_image(self):
        with self.assertRaises(ValueError):
            self.service.save_upload("team-1", upload(b"not an image"))

    def test_images_are_team_scoped(self):
        image = self.service.save_upload("team-1", upload(png_bytes()))
        with self.assertRaises(NotFoundError):
            self.service.get_image("team-2", image["id"])
