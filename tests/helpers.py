import tempfile
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from PIL import Image

from reelstudio.common.config import AppConfig
from reelstudio.common.db.session import build_engine, init_db, make_session_factory
from reelstudio.common.models import Team, TeamImage
from reelstudio.common.services.storage_service import ObjectStorage


def memory_session_factory():
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    return make_session_factory(engine)


def app_config(**overrides) -> AppConfig:
    values = dict(
        database_url="sqlite:///:memory:",
        secret_key="test-secret",
        log_level="error",
        public_base_url="https://studio.test",
        video_timeout_minutes=10,
        signed_url_ttl_seconds=7200,
    )
    values.update(overrides)
    return AppConfig(**values)


def temp_storage(testcase) -> ObjectStorage:
    tmp = tempfile.TemporaryDirectory()
    testcase.addCleanup(tmp.cleanup)
    return ObjectStorage(Path(tmp.name), "test-secret")


def png_bytes(size=(512, 512), color=(200, 30, 30)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def add_team_image(session_factory, team_id="team-1", image_id=None) -> str:
    image_id = image_id or str(uuid4())
    with session_factory() as session:
        if session.get(Team, team_id) is None:
            session.add(Team(id=team_id, name=team_id))
            session.flush()
        session.add(TeamImage(id=image_id, team_id=team_id, storage_path=f"{team_id}/{image_id}.png"))
    return image_id
