import re
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi import HTTPException

from tests.base import StorefrontApiBase

from storefront.core.config import settings
from storefront.services.uploads import detect_mime_type, move_to_permanent, validate_upload_or_400

_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 4096


class UploadValidationTests(unittest.TestCase):
    def test_mime_comes_from_extension_first(self):
        self.assertEqual(detect_mime_type("photo.JPG", "text/plain"), "image/jpeg")
        self.assertEqual(detect_mime_type("noext", "image/png"), "image/png")

    def test_rejections(self):
        cases = [
            ("doc.pdf", "application/pdf", 4096),
            ("noext", "image/png", 4096),
            ("tiny.png", "image/png", 100),
            ("huge.png", "image/png", 6 * 1024 * 1024),
        ]
        for name, mime, size in cases:
            with self.assertRaises(HTTPException) as ctx:
                validate_upload_or_400(name, mime, size)
            self.assertEqual(ctx.exception.status_code, 400, name)

    def test_accepts_webp(self):
        self.assertEqual(validate_upload_or_400("pic.webp", None, 4096), "image/webp")


class UploadApiTests(StorefrontApiBase):
    def setUp(self):
        super().setUp()
        self.user = self.create_user(email="buyer@example.com")
        self.upload_dir = tempfile.mkdtemp()
        self.settings_patch = patch.object(settings, "UPLOAD_DIR", self.upload_dir)
        self.settings_patch.start()

    def tearDown(self):
        self.settings_patch.stop()
        shutil.rmtree(self.upload_dir, ignore_errors=True)
        super().tearDown()

    def _upload(self, name="photo.png", content=_PNG, mime="image/png", headers=None):
        return self.client.post(
            "/upload",
            files={"file": (name, content, mime)},
            headers=self.auth_headers(self.user) if headers is None else headers,
        )

    def test_upload_stores_file_under_random_name(self):
        response = self._upload()
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertRegex(body["fileName"], r"^/images/[0-9a-f]{32}\.png$")
        self.assertEqual(body["originalName"], "photo.png")
        self.assertEqual(body["size"], len(_PNG))
        self.assertEqual(body["mimetype"], "image/png")

        stored = Path(self.upload_dir) / settings.UPLOAD_TEMP_SUBDIR / body["fileName"].rsplit("/", 1)[1]
        self.assertEqual(stored.read_bytes(), _PNG)

    def test_uploaded_file_can_be_moved_to_images(self):
        file_name = self._upload().json()["fileName"]
        stored_name = move_to_permanent(file_name)
        self.assertTrue(re.fullmatch(r"[0-9a-f]{32}\.png", stored_name))
        self.assertTrue((Path(self.upload_dir) / settings.UPLOAD_SUBDIR / stored_name).exists())

    def test_requires_authentication(self):
        self.assertEqual(self._upload(headers={}).status_code, 401)

    def test_missing_file_is_rejected(self):
        response = self.client.post("/upload", headers=self.auth_headers(self.user))
        self.assertEqual(response.status_code, 400)

    def test_invalid_files_are_rejected(self):
        self.assertEqual(self._upload(name="script.exe", mime="application/octet-stream").status_code, 400)
        self.assertEqual(self._upload(content=b"x" * 10).status_code, 400)


if __name__ == "__main__":
    unittest.main()
