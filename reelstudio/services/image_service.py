"""Stores uploaded team images and reads them back for the pipeline."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage

from ..common.db.session import get_session
from ..common.models.team import Team, TeamImage
from ..common.services.errors import NotFoundError
from ..common.services.logging import log_event
from ..common.services.storage_service import IMAGES_BUCKET, ObjectStorage

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
MIN_SIDE = 256


class ImageService:
    """Validates uploads with Pillow and keeps them in the team-images bucket."""

    def __init__(self, storage: ObjectStorage, session_factory=get_session) -> None:
        self._storage = storage
        self._session_factory = session_factory

    def save_upload(self, team_id: str, uploaded: Optional[FileStorage]) -> Dict:
        self._validate_upload(uploaded)
        binary = uploaded.read()
        if not binary:
            raise ValueError("Image is empty, please choose another file.")

        ext = self._extension(uploaded.filename)
        try:
            with Image.open(BytesIO(binary)) as image:
                image.verify()
            with Image.open(BytesIO(binary)) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("File is not a supported image.") from exc
        if min(width, height) < MIN_SIDE:
            raise ValueError(f"Image is too small (minimum {MIN_SIDE}px per side).")

        image_id = str(uuid4())
        storage_path = f"{team_id}/{image_id}.{ext}"
        self._storage.upload(IMAGES_BUCKET, storage_path, binary)

        with self._session_factory() as session:
            if session.get(Team, team_id) is None:
                session.add(Team(id=team_id, name=team_id))
                session.flush()
            row = TeamImage(
                id=image_id,
                team_id=team_id,
                storage_path=storage_path,
                file_name=Path(uploaded.filename).name[:255],
                width=width,
                height=height,
            )
            session.add(row)
            session.flush()
            data = row.to_dict()
        log_event("info", "image.uploaded", team_id=team_id, image_id=image_id, width=width, height=height)
        return data

    def get_image(self, team_id: str, image_id: str) -> Dict:
        with self._session_factory() as session:
            row = (
                session.query(TeamImage)
                .filter(TeamImage.id == image_id, TeamImage.team_id == team_id)
                .first()
            )
            if row is None:
                raise NotFoundError("Image not found")
            return row.to_dict()

    def read_bytes(self, team_id: str, image_id: str) -> bytes:
        return self._storage.download(IMAGES_BUCKET, self.get_image(team_id, image_id)["storage_path"])

    @staticmethod
    def _validate_upload(uploaded: Optional[FileStorage]) -> None:
        if uploaded is None or uploaded.filename is None or not uploaded.filename.strip():
            raise ValueError("Please choose an image file to upload.")

    @staticmethod
    def _extension(filename: str) -> str:
        parts = filename.rsplit(".", 1)
        ext = parts[1].lower() if len(parts) == 2 else ""
        if ext not in ALLOWED_EXTENSIONS:
            raise ValueError("Unsupported image type (jpg, png or webp).")
        return "jpg" if ext == "jpeg" else ext
