"""
Browser action types.

Actions form a tagged union discriminated on ``action``. Fields that a given
action requires are still optional on the model: the reasoning model's JSON
schema sends ``null`` for every field it does not use, and missing values are
reported back to it by the executor as ``"Error: ..."`` results rather than
as validation failures.
"""

from typing import Annotated, Any, ClassVar, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from tabpilot.agents.exceptions import ActionError

ACTION_TYPES = ("click", "type", "press", "scroll", "wait", "navigate", "ask_user", "done")

# Actions the tool protocol may request through execute_action
EXECUTABLE_ACTION_TYPES = ("click", "type", "press", "scroll", "wait", "navigate")


class BaseAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Whether the action acts on what is currently on screen
    needs_snapshot: ClassVar[bool] = False
    terminal: ClassVar[bool] = False

    def invalidates_perception(self) -> bool:
        """Whether running this action may change the page under the cached screenshot."""
        return False

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ClickAction(BaseAction):
    action: Literal["click"] = "click"
    target: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None

    needs_snapshot: ClassVar[bool] = True

    def invalidates_perception(self) -> bool:
        return True


class TypeAction(BaseAction):
    action: Literal["type"] = "type"
    text: Optional[str] = None

    needs_snapshot: ClassVar[bool] = True


class PressAction(BaseAction):
    action: Literal["press"] = "press"
    key: Optional[str] = None

    needs_snapshot: ClassVar[bool] = True

    def invalidates_perception(self) -> bool:
        # Enter may submit a form
        if not self.key:
            return False
        return self.key.split("+")[-1].strip().lower() in ("enter", "return")


class ScrollAction(BaseAction):
    action: Literal["scroll"] = "scroll"
    direction: Optional[str] = None

    needs_snapshot: ClassVar[bool] = True

    def invalidates_perception(self) -> bool:
        return True


class WaitAction(BaseAction):
    action: Literal["wait"] = "wait"
    duration: Optional[float] = None


class NavigateAction(BaseAction):
    action: Literal["navigate"] = "navigate"
    url: Optional[str] = None

    def invalidates_perception(self) -> bool:
        return True


class AskUserAction(BaseAction):
    action: Literal["ask_user"] = "ask_user"
    prompt: Optional[str] = None

    terminal: ClassVar[bool] = True


class DoneAction(BaseAction):
    action: Literal["done"] = "done"
    result: Optional[str] = None

    terminal: ClassVar[bool] = True


Action = Annotated[
    Union[
        ClickAction,
        TypeAction,
        PressAction,
        ScrollAction,
        WaitAction,
        NavigateAction,
        AskUserAction,
        DoneAction,
    ],
    Field(discriminator="action"),
]

_ACTION_ADAPTER = TypeAdapter(Action)


def parse_action(data: Dict[str, Any], allowed: tuple = ACTION_TYPES) -> Action:
    """
    Validate a raw action dict into its concrete action model.

    Raises:
        ActionError: For unknown action names or ill-typed fields
    """
    if not isinstance(data, dict):
        raise ActionError(f"Action must be an object, got {type(data).__name__}")

    name = data.get("action")
    if name not in allowed:
        raise ActionError(
            f'Unknown action "{name}". Valid actions: {", ".join(allowed)}',
            action=str(name),
        )

    try:
        return _ACTION_ADAPTER.validate_python(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or name}: {err['msg']}" for err in e.errors()
        )
        raise ActionError(f"Invalid {name} action: {details}", action=name) from e


def format_duration(duration: float) -> str:
    return str(int(duration)) if float(duration).is_integer() else str(duration)


def describe_action(action: BaseAction) -> str:
    """Short human-readable description, used in status updates and chat history."""
    if isinstance(action, ClickAction):
        if action.target:
            return f"Click: {action.target}"
        return f"Click: ({action.x}, {action.y})"
    if isinstance(action, TypeAction):
        return f'Type: "{action.text}"'
    if isinstance(action, PressAction):
        return f"Press: {action.key}"
    if isinstance(action, ScrollAction):
        return f"Scroll {action.direction}"
    if isinstance(action, NavigateAction):
        return f"Navigate to {action.url}"
    if isinstance(action, WaitAction):
        return f"Wait {format_duration(action.duration if action.duration is not None else 1000)}ms"
    if isinstance(action, DoneAction):
        return "Done"
    if isinstance(action, AskUserAction):
        return "Waiting for user"
    return getattr(action, "action", "unknown")
