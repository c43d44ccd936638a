from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


__all__ = [
    "ElementType",
    "ItemActionType",
    "Option",
    "Item",
    "LogicNext",
    "Element",
    "Slide",
    "Flow",
    "item_logic_key",
]

logger = logging.getLogger(__name__)


class ElementType(str, Enum):
    """
    Element type tags used by the builder.

    Only the types the runtime reacts to are listed; unknown tags are
    kept as plain strings on the Element.
    """
    OPTION_LIST = "OPTION_LIST"
    QUESTIONNAIRE = "QUESTIONNAIRE"
    QUESTION_GRID = "QUESTION_GRID"
    FORM = "FORM"
    BUTTON = "BUTTON"
    PROGRESS = "PROGRESS"
    TEXT = "TEXT"


class ItemActionType(str, Enum):
    """What happens when a questionnaire/grid item is picked."""
    NONE = "none"
    SLIDE = "slide"   # Jump to item.slide_id
    URL = "url"       # Open item.url


# Element types whose config carries selectable items
ITEM_ELEMENT_TYPES = {ElementType.QUESTIONNAIRE.value, ElementType.QUESTION_GRID.value}


def item_logic_key(element_id: str, item_id: str) -> str:
    """Build the logic-next key for an item inside an element."""
    return f"{element_id}-item-{item_id}"


def _decode_config(value: Any) -> dict[str, Any]:
    """Decode a uiConfig that may arrive as a JSON string."""
    if value is None:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("Discarding malformed uiConfig string")
            return {}
    if not isinstance(value, dict):
        return {}
    return value


class Option(BaseModel):
    """
    A slide-level answer option.

    Attributes:
        id: Option identifier (logic-next key under ``options``).
        label: Visible text.
        emoji: Optional emoji shown next to the label.
        points: Points for picking this option (overrides per-answer).
        is_correct: Whether this is a correct answer, if the quiz grades.
    """
    id: str = Field(description="Option identifier")
    label: str = Field(default="", description="Visible label")
    emoji: Optional[str] = Field(default=None, description="Optional emoji")
    points: Optional[int] = Field(default=None, description="Points override")
    is_correct: Optional[bool] = Field(default=None, alias="isCorrect", description="Correct answer flag")

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class Item(BaseModel):
    """
    A selectable item inside a QUESTIONNAIRE or QUESTION_GRID element.

    Attributes:
        id: Item identifier.
        label: Visible text.
        action_type: Item-level action (none, slide, url).
        slide_id: Target slide for ``slide`` actions.
        url: Target URL for ``url`` actions.
        open_in_new_tab: Whether URL actions open a new tab.
        points: Points override for this item.
        points_enabled: ``False`` suppresses points for this item.
    """
    id: str = Field(description="Item identifier")
    label: str = Field(default="", description="Visible label")
    action_type: ItemActionType = Field(default=ItemActionType.NONE, alias="actionType")
    slide_id: Optional[str] = Field(default=None, alias="slideId")
    url: Optional[str] = Field(default=None)
    open_in_new_tab: bool = Field(default=True, alias="openInNewTab")
    points: Optional[int] = Field(default=None)
    points_enabled: Optional[bool] = Field(default=None, alias="pointsEnabled")
    is_correct: Optional[bool] = Field(default=None, alias="isCorrect")

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}

    @field_validator("action_type", mode="before")
    @classmethod
    def default_action(cls, v: Any) -> Any:
        """Unknown or empty action types behave as ``none``."""
        if v in (None, ""):
            return ItemActionType.NONE
        if isinstance(v, str) and v not in {a.value for a in ItemActionType}:
            logger.warning(f"Unknown item actionType '{v}', treating as none")
            return ItemActionType.NONE
        return v

    @property
    def has_action(self) -> bool:
        return self.action_type != ItemActionType.NONE


class LogicNext(BaseModel):
    """
    Per-slide override map.

    ``options`` maps option ids to slide ids, ``elements`` maps either
    ``"<elementId>-item-<itemId>"`` or a bare element id to slide ids.
    """
    options: dict[str, str] = Field(default_factory=dict)
    elements: dict[str, str] = Field(default_factory=dict)
    default_next: Optional[str] = Field(default=None, alias="defaultNext")

    model_config = {"populate_by_name": True}

    @field_validator("options", "elements", mode="before")
    @classmethod
    def drop_empty_targets(cls, v: Any) -> Any:
        """Entries with empty targets mean "no override"."""
        if not isinstance(v, dict):
            return {}
        return {str(k): str(t) for k, t in v.items() if t}


class Element(BaseModel):
    """
    A typed content block on a slide.

    ``ui_config`` is opaque to the runtime apart from a handful of keys
    read through the properties below (items, multipleSelection,
    lockSlide, gamificationConfig).

    Attributes:
        id: Element identifier.
        element_type: Type tag (see ElementType; unknown tags allowed).
        ui_config: Element configuration from the builder.
        gamification_config: Per-element gamification opt-in block.
    """
    id: str = Field(description="Element identifier")
    element_type: str = Field(default="", alias="elementType", description="Type tag")
    ui_config: dict[str, Any] = Field(default_factory=dict, alias="uiConfig")
    gamification_config: Optional[dict[str, Any]] = Field(default=None, alias="gamificationConfig")

    model_config = {"populate_by_name": True}

    @field_validator("ui_config", mode="before")
    @classmethod
    def decode_ui_config(cls, v: Any) -> dict[str, Any]:
        return _decode_config(v)

    @field_validator("element_type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        if isinstance(v, ElementType):
            return v.value
        return str(v or "").upper()

    def is_type(self, *types: ElementType) -> bool:
        """Check the element's type tag."""
        return self.element_type in {t.value for t in types}

    @property
    def items(self) -> list[Item]:
        """Selectable items (questionnaires and grids only)."""
        if self.element_type not in ITEM_ELEMENT_TYPES:
            return []
        raw_items = self.ui_config.get("items") or []
        items = []
        for raw in raw_items:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            try:
                items.append(Item.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed item on element {self.id}: {e}")
        return items

    def get_item(self, item_id: str) -> Optional[Item]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def multiple_selection(self) -> bool:
        return self.ui_config.get("multipleSelection") is True

    @property
    def auto_advance(self) -> bool:
        """
        Whether a selection on this element may navigate by itself.

        Multi-selection elements only toggle; they move on through an
        explicit continue control.
        """
        if self.multiple_selection:
            return False
        return self.ui_config.get("autoAdvance", True) is not False

    @property
    def lock_slide(self) -> bool:
        return self.ui_config.get("lockSlide") is True


class Slide(BaseModel):
    """
    One screen of a flow.

    Attributes:
        id: Slide identifier.
        question: Optional slide-level question text.
        elements: Ordered elements.
        options: Slide-level answer options.
        logic_next: Override map for navigation.
        background_config: Background settings; may carry ``lockSlide``.
    """
    id: str = Field(description="Slide identifier")
    question: Optional[str] = Field(default=None)
    elements: list[Element] = Field(default_factory=list)
    options: list[Option] = Field(default_factory=list)
    logic_next: LogicNext = Field(default_factory=LogicNext, alias="logicNext")
    background_config: dict[str, Any] = Field(default_factory=dict, alias="backgroundConfig")

    model_config = {"populate_by_name": True}

    @field_validator("logic_next", mode="before")
    @classmethod
    def empty_logic(cls, v: Any) -> Any:
        return v or {}

    @field_validator("background_config", mode="before")
    @classmethod
    def decode_background(cls, v: Any) -> dict[str, Any]:
        return _decode_config(v)

    @property
    def locked_by_background(self) -> bool:
        return self.background_config.get("lockSlide") is True

    def get_element(self, element_id: str) -> Optional[Element]:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    def get_option(self, option_id: str) -> Optional[Option]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def find_item_owner(self, item_id: str) -> Optional[Element]:
        """Find the element on this slide that holds ``item_id``."""
        for element in self.elements:
            if element.get_item(item_id) is not None:
                return element
        return None


class Flow(BaseModel):
    """
    The complete ordered quiz/presentation document.

    Handed to the runtime read-only; nothing in the engine mutates it.
    """
    id: str = Field(default="", description="Flow identifier")
    name: str = Field(default="", description="Display name")
    slides: list[Slide] = Field(default_factory=list)
    gamification_config: Optional[dict[str, Any]] = Field(default=None, alias="gamificationConfig")

    model_config = {"populate_by_name": True}

    def index_of(self, slide_id: Optional[str]) -> int:
        """Position of a slide, or -1 when it does not exist."""
        if not slide_id:
            return -1
        for index, slide in enumerate(self.slides):
            if slide.id == slide_id:
                return index
        return -1

    def has_slide(self, slide_id: Optional[str]) -> bool:
        return self.index_of(slide_id) >= 0

    def get_slide(self, slide_id: str) -> Optional[Slide]:
        index = self.index_of(slide_id)
        return self.slides[index] if index >= 0 else None

    def find_element(self, element_id: Optional[str]) -> Optional[Element]:
        """Locate an element by id across every slide."""
        if not element_id:
            return None
        for slide in self.slides:
            element = slide.get_element(element_id)
            if element is not None:
                return element
        return None

    def dangling_references(self) -> list[tuple[str, str, str]]:
        """
        List logic-next entries that point nowhere.

        Returns:
            Tuples of (slide_id, key, target) for every override whose
            key or target no longer exists.
        """
        dangling = []
        for slide in self.slides:
            logic = slide.logic_next
            for option_id, target in logic.options.items():
                if slide.get_option(option_id) is None or not self.has_slide(target):
                    dangling.append((slide.id, option_id, target))
            for key, target in logic.elements.items():
                if not self._element_key_exists(slide, key) or not self.has_slide(target):
                    dangling.append((slide.id, key, target))
            if logic.default_next and not self.has_slide(logic.default_next):
                dangling.append((slide.id, "defaultNext", logic.default_next))
        return dangling

    @staticmethod
    def _element_key_exists(slide: Slide, key: str) -> bool:
        if slide.get_element(key) is not None:
            return True
        for element in slide.elements:
            for item in element.items:
                if item_logic_key(element.id, item.id) == key:
                    return True
        return False
