"""Camera recording state tracker for multi-camera projects.

All functions are pure: they return a new ``CameraRecState`` and never mutate
their input. The persisted form is a plain dict so it survives changes of
the project's camera configuration between sessions.
"""

import logging
from typing import Any

from takelog.exceptions import UnknownCameraError
from takelog.schemas.camera import CameraChannel, CameraRecState

logger = logging.getLogger(__name__)

# Earlier app versions stored {"cameraFile1": true, "cameraFile2": false}
_LEGACY_PREFIX = "cameraFile"


def initialize(camera_count: int) -> CameraRecState:
    """All cameras rolling with empty roll/card labels."""
    if camera_count < 1:
        raise UnknownCameraError(0, camera_count)
    return CameraRecState(
        camera_count=camera_count,
        cameras={i: CameraChannel() for i in range(camera_count)},
    )


def _check_camera(state: CameraRecState, camera_id: int) -> None:
    if camera_id < 0 or camera_id >= state.camera_count:
        raise UnknownCameraError(camera_id, state.camera_count)


def toggle(state: CameraRecState, camera_id: int) -> CameraRecState:
    """Flip one camera's rolling flag."""
    _check_camera(state, camera_id)
    cameras = {cid: ch.model_copy() for cid, ch in state.cameras.items()}
    current = cameras.get(camera_id, CameraChannel())
    cameras[camera_id] = current.model_copy(update={"rolling": not current.rolling})
    return CameraRecState(camera_count=state.camera_count, cameras=cameras)


def set_label(state: CameraRecState, camera_id: int, label: str) -> CameraRecState:
    """Set the roll/card label of one camera."""
    _check_camera(state, camera_id)
    cameras = {cid: ch.model_copy() for cid, ch in state.cameras.items()}
    current = cameras.get(camera_id, CameraChannel())
    cameras[camera_id] = current.model_copy(update={"label": label.strip()})
    return CameraRecState(camera_count=state.camera_count, cameras=cameras)


def rolling_cameras(state: CameraRecState | None) -> list[int]:
    """Ids of cameras that recorded. No state means a single rolling camera."""
    if state is None:
        return [0]
    return [cid for cid in range(state.camera_count) if state.is_rolling(cid)]


def serialize(state: CameraRecState) -> dict[str, Any]:
    return {
        "camera_count": state.camera_count,
        "cameras": {
            str(cid): {"rolling": ch.rolling, "label": ch.label}
            for cid, ch in sorted(state.cameras.items())
        },
    }


def _legacy_cameras(form: dict[str, Any]) -> dict[int, dict[str, Any]]:
    cameras: dict[int, dict[str, Any]] = {}
    for key, value in form.items():
        if not key.startswith(_LEGACY_PREFIX):
            continue
        suffix = key[len(_LEGACY_PREFIX):]
        number = int(suffix) if suffix.isdigit() else 1
        cameras[number - 1] = {"rolling": bool(value)}
    return cameras


def deserialize(form: dict[str, Any] | None, camera_count: int | None = None) -> CameraRecState:
    """Rebuild a state from its persisted form.

    Missing cameras default to rolling; when ``camera_count`` differs from the
    stored count the state is resized to it.
    """
    form = form or {}
    raw_cameras = form.get("cameras")
    if raw_cameras is None:
        raw_cameras = _legacy_cameras(form)

    cameras: dict[int, CameraChannel] = {}
    for key, value in raw_cameras.items():
        try:
            cid = int(key)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring camera entry with non-numeric id: {key!r}")
            continue
        if isinstance(value, bool):
            value = {"rolling": value}
        value = value or {}
        cameras[cid] = CameraChannel(
            rolling=bool(value.get("rolling", True)),
            label=str(value.get("label") or ""),
        )

    stored_count = form.get("camera_count")
    if not isinstance(stored_count, int) or stored_count < 1:
        stored_count = max(cameras, default=-1) + 1 or 1
    count = camera_count if camera_count is not None else stored_count
    if count < 1:
        raise UnknownCameraError(0, count)

    if count != stored_count:
        logger.info(f"Resizing camera state from {stored_count} to {count} camera(s)")

    return CameraRecState(
        camera_count=count,
        cameras={cid: cameras.get(cid, CameraChannel()) for cid in range(count)},
    )
