from __future__ import annotations
import io
from PIL import Image, ImageDraw, UnidentifiedImageError
from db import ProfileRepository, SettingsRepository


class AvatarService:
    """Store user avatars and serve generated defaults."""

    SIZE = 256
    MAX_UPLOAD_BYTES = 5 * 1024 * 1024
    DEFAULT_COLOR = "#ff4b4b"

    def __init__(
        self, profile_repo: ProfileRepository, settings_repo: SettingsRepository
    ) -> None:
        self._profiles = profile_repo
        self._settings = settings_repo

    def _generate_avatar(self, color: str) -> bytes:
        img = Image.new("RGBA", (64, 64), (255, 255, 255, 0))
        draw = ImageDraw.Draw(img)
        draw.ellipse((8, 8, 56, 56), fill=color)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def get_default(self) -> bytes:
        return self._generate_avatar(
            self._settings.get_text("avatar_color", self.DEFAULT_COLOR)
        )

    def upload(self, user_id: int, data: bytes) -> bytes:
        """Normalise ``data`` to a square-bounded PNG and store it."""
        if not data:
            raise ValueError("empty image")
        if len(data) > self.MAX_UPLOAD_BYTES:
            raise ValueError("image too large")
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError):
            raise ValueError("invalid image")
        img = img.convert("RGBA")
        img.thumbnail((self.SIZE, self.SIZE))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        png = buf.getvalue()
        self._profiles.set_avatar(user_id, png)
        return png

    def get(self, user_id: int) -> bytes:
        data = self._profiles.get_avatar(user_id)
        return data if data is not None else self.get_default()

    def remove(self, user_id: int) -> None:
        self._profiles.set_avatar(user_id, None)
