"""
Scene-aware control registry.

Controls are addressed either by a numeric id, which lets integer-only sources
such as datagram controllers or Max patches send ``target, control, value``
triples, or by name, which is what user interfaces and the command router use.
Both forms resolve through the same table, so adding a control to a scene only
requires adding a row to it.

Id 0 means "no target" and id 100 is the scene-select control; neither may be
used by a scene.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

from aioscore.models.score import ControlDefinition

logger = logging.getLogger(__name__)

NO_TARGET_CONTROL_ID = 0
SCENE_SELECT_CONTROL_ID = 100
SCENE_SELECT_CONTROL_NAME = "scene"
RESERVED_CONTROL_IDS = frozenset({NO_TARGET_CONTROL_ID, SCENE_SELECT_CONTROL_ID})


@dataclass(frozen=True)
class ById:
    """Reference to a control by its numeric id."""

    control_id: int


@dataclass(frozen=True)
class ByName:
    """Reference to a control by its name."""

    name: str


ControlRef = ById | ByName


def control_ref(raw: object) -> ControlRef | None:
    """
    Build a control reference from an untyped value received over the wire.

    Integers (and integral floats such as ``1.0``) become ``ById``, non-empty
    strings become ``ByName``. Anything else returns None.
    """
    match raw:
        case bool():
            return None
        case int():
            return ById(raw)
        case float() if math.isfinite(raw) and raw.is_integer():
            return ById(int(raw))
        case str() if raw.strip():
            return ByName(raw.strip())
    return None


@dataclass(frozen=True)
class SceneControls:
    """The ordered controls available in one scene."""

    scene_name: str
    controls: tuple[ControlDefinition, ...]


AUDIO_SCORE_CONTROLS = SceneControls(
    scene_name="audioScore",
    controls=(
        ControlDefinition(
            id=1,
            name="pitch",
            min_value=36,
            max_value=84,
            step=1,
            default_value=69,
            unit="MIDI",
        ),
        ControlDefinition(
            id=2,
            name="interval",
            min_value=50,
            max_value=3000,
            step=50,
            default_value=1000,
            unit="ms",
        ),
    ),
)

DEFAULT_SCENES: tuple[SceneControls, ...] = (AUDIO_SCORE_CONTROLS,)


class ControlRegistry:
    """Lookup table from (scene, id or name) to a control definition."""

    _scenes: dict[str, SceneControls]
    _scene_select: ControlDefinition

    def __init__(self, scenes: Iterable[SceneControls] = DEFAULT_SCENES) -> None:
        """
        Initialize the registry from a scene table.

        Raises:
            ValueError: If the table is empty, a scene name is duplicated, or a
                scene uses a reserved or duplicated control id or name.
        """
        self._scenes = {}
        for scene in scenes:
            if scene.scene_name in self._scenes:
                raise ValueError(f"Duplicate scene: {scene.scene_name}")
            ids = [control.id for control in scene.controls]
            names = [control.name for control in scene.controls]
            if len(set(ids)) != len(ids) or len(set(names)) != len(names):
                raise ValueError(f"Duplicate control in scene {scene.scene_name}")
            if RESERVED_CONTROL_IDS.intersection(ids):
                raise ValueError(f"Scene {scene.scene_name} uses a reserved control id")
            if SCENE_SELECT_CONTROL_NAME in names:
                raise ValueError(f"Scene {scene.scene_name} uses a reserved control name")
            self._scenes[scene.scene_name] = scene
        if not self._scenes:
            raise ValueError("At least one scene is required")
        self._scene_select = ControlDefinition(
            id=SCENE_SELECT_CONTROL_ID,
            name=SCENE_SELECT_CONTROL_NAME,
            min_value=0,
            max_value=len(self._scenes) - 1,
            step=1,
            default_value=0,
        )
        logger.debug("Control registry initialized with scenes: %s", ", ".join(self._scenes))

    @property
    def scenes(self) -> list[str]:
        """Names of all scenes, in table order."""
        return list(self._scenes)

    @property
    def default_scene(self) -> str:
        """The first scene of the table."""
        return next(iter(self._scenes))

    @property
    def scene_select(self) -> ControlDefinition:
        """The global scene-select control, valued by scene index."""
        return self._scene_select

    def has_scene(self, scene: str) -> bool:
        """Check if a scene exists in the table."""
        return scene in self._scenes

    def scene_at(self, index: int) -> str | None:
        """Get the scene name at a table index."""
        if 0 <= index < len(self._scenes):
            return self.scenes[index]
        return None

    def scene_controls(self, scene: str) -> list[ControlDefinition]:
        """Get the controls of a scene, empty for unknown scenes."""
        scene_controls = self._scenes.get(scene)
        if scene_controls is None:
            return []
        return list(scene_controls.controls)

    def resolve(self, control: ControlRef, scene: str) -> ControlDefinition | None:
        """Resolve a control reference within a scene.

        The scene-select control resolves in every scene. Range validation is
        left to the caller.
        """
        if control in (ById(SCENE_SELECT_CONTROL_ID), ByName(SCENE_SELECT_CONTROL_NAME)):
            return self._scene_select
        match control:
            case ById(control_id):
                return next(
                    (c for c in self.scene_controls(scene) if c.id == control_id),
                    None,
                )
            case ByName(name):
                return next(
                    (c for c in self.scene_controls(scene) if c.name == name),
                    None,
                )
        return None

    def default_value(self, name: str, scene: str | None = None) -> int:
        """
        Get the default value of a control.

        Looks the control up in the given scene, falling back to the default scene.

        Raises:
            KeyError: If the control is not defined.
        """
        for candidate in (scene, self.default_scene):
            if candidate is None:
                continue
            definition = self.resolve(ByName(name), candidate)
            if definition is not None:
                return int(definition.default_value)
        raise KeyError(name)
