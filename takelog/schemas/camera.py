from pydantic import BaseModel, Field


class CameraChannel(BaseModel):
    """Recording flag and roll/card label for one camera."""

    rolling: bool = True
    label: str = ""


class CameraRecState(BaseModel):
    """Per-camera recording state of a multi-camera take."""

    camera_count: int = Field(..., ge=1)
    cameras: dict[int, CameraChannel] = Field(default_factory=dict)

    def is_rolling(self, camera_id: int) -> bool:
        channel = self.cameras.get(camera_id)
        return channel.rolling if channel else True
