import json
import os
import tempfile
from pathlib import Path
from unittest import TestCase
from unittest.mock import Mock, patch

import requests

from reelstudio.common.services.kie_video_service import KieVideoService


def response(status=200, body=None, text=""):
    resp = Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text or json.dumps(body or {})
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    resp.content = b"video"
    return resp


class KieVideoServiceTests(TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.settings = Path(tmp.name) / "settings.json"
        self.settings.write_text(json.dumps({"KIE_API_KEY": "kie-key"}), encoding="utf-8")
        self.http = Mock()
        self.service = KieVideoService(str(self.settings), http=self.http)

    def test_generate_posts_provider_payload(self):
        self.http.post.return_value = response(body={"code": 200, "data": {"taskId": "abc"}})
        result = self.service.generate_video(
            prompt="hello",
            image_urls=["https://img"],
            aspect_ratio="9:16",
            callback_url="https://cb",
            seed=12345,
        )
        self.assertEqual(result, {"status": "processing", "task_id": "abc", "message": None})
        url = self.http.post.call_args.args[0]
        self.assertEqual(url, "https://api.kie.ai/api/v1/veo/generate")
        body = self.http.post.call_args.kwargs["json"]
        self.assertEqual(body["generationType"], "FIRST_AND_LAST_FRAMES_2_VIDEO")
        self.assertEqual(body["imageUrls"], ["https://img"])
        self.assertEqual(body["callBackUrl"], "https://cb")
        self.assertEqual(body["seeds"], [12345])
        self.assertEqual(body["model"], "veo3_fast")
        headers = self.http.post.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer kie-key")

    def test_extend_reads_top_level_task_id(self):
        self.http.post.return_value = response(body={"taskId": "next"})
        result = self.service.extend_video(task_id="abc", prompt="p2", seed=12345, callback_url="https://cb")
        self.assertEqual(result["task_id"], "next")
        self.assertTrue(self.http.post.call_args.args[0].endswith("/api/v1/veo/extend"))
        body = self.http.post.call_args.kwargs["json"]
        self.assertEqual(body["taskId"], "abc")
        self.assertEqual(body["seeds"], 12345)
        self.assertEqual(body["watermark"], "")

    def test_provider_text_is_returned_verbatim(self):
        self.http.post.return_value = response(status=422, text="imageUrls is invalid")
        result = self.service.generate_video(
            prompt="p", image_urls=[], aspect_ratio="16:9", callback_url="https://cb", seed=12345
        )
        self.assertEqual(result["status"], "error")
        self.assertEqual(result["message"], "imageUrls is invalid")

    def test_missing_task_id_is_error(self):
        self.http.post.return_value = response(body={"code": 200, "data": {}})
        result = self.service.extend_video(task_id="abc", prompt="p", seed=1, callback_url="https://cb")
        self.assertEqual(result["status"], "error")

    def test_timeout_is_error(self):
        self.http.post.side_effect = requests.exceptions.Timeout()
        result = self.service.extend_video(task_id="abc", prompt="p", seed=1, callback_url="https://cb")
        self.assertEqual(result["status"], "error")

    def test_without_key_nothing_is_sent(self):
        with patch.dict(os.environ, {"KIE_API_KEY": ""}):
            service = KieVideoService(None, http=self.http)
        result = service.extend_video(task_id="abc", prompt="p", seed=1, callback_url="https://cb")
        self.assertEqual(result["status"], "error")
        self.assertFalse(self.http.post.called)

    def test_download(self):
        self.http.get.return_value = response(body={})
        self.assertEqual(self.service.download_video("https://cdn/v.mp4")["content"], b"video")
        self.http.get.return_value = response(status=404, text="gone")
        result = self.service.download_video("https://cdn/v.mp4")
        self.assertEqual(result["status"], "error")
        self.assertEqual(result["message"], "Video download failed: HTTP 404")

    def test_settings_hot_reload(self):
        self.http.post.return_value = response(body={"taskId": "x"})
        self.settings.write_text(json.dumps({"KIE_API_KEY": "rotated", "KIE_MODEL": "veo3"}), encoding="utf-8")
        st = self.settings.stat()
        os.utime(self.settings, (st.st_atime, st.st_mtime + 10))
        self.service.generate_video(prompt="p", image_urls=[], aspect_ratio="16:9", callback_url="https://cb", seed=1)
        self.assertEqual(self.http.post.call_args.kwargs["headers"]["Authorization"], "Bearer rotated")
        self.assertEqual(self.http.post.call_args.kwargs["json"]["model"], "veo3")
