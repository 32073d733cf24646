from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
    model_validator,
)


# ── Videos ───────────────────────────────────────────────────────────────────

class VideoCandidate(BaseModel):
    """One search hit for a topic. Counts are display text, e.g. '1.2M'."""
    title: str
    url: str
    length: str = "Unknown"
    views: str = "N/A"
    likes: str = "N/A"


class EnrichedTopic(BaseModel):
    title: str
    videos: List[VideoCandidate]


# ── Resources ────────────────────────────────────────────────────────────────

class ResourceType(str, Enum):
    youtube_link = "youtube_link"
    notes = "notes"


_RESOURCE_TYPE_ALIASES = {
    "youtube_link": ResourceType.youtube_link,
    "youtube": ResourceType.youtube_link,
    "video": ResourceType.youtube_link,
    "youtube_video": ResourceType.youtube_link,
    "notes": ResourceType.notes,
    "note": ResourceType.notes,
    "md_notes": ResourceType.notes,
    "markdown_notes": ResourceType.notes,
}


def normalize_resource_type(value: Any) -> ResourceType:
    """Map any label the model has been seen to emit onto ResourceType."""
    if isinstance(value, ResourceType):
        return value
    key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return _RESOURCE_TYPE_ALIASES[key]
    except KeyError:
        raise ValueError(f"Unknown resource type '{value}'")


def new_resource_id() -> str:
    return f"res-{uuid.uuid4()}"


class ResourceData(BaseModel):
    url: Optional[str] = None
    id: Optional[str] = None
    # Staging field for notes; consumed by materialization.
    description: Optional[str] = None


class Resource(BaseModel):
    id: str = Field(default_factory=new_resource_id)
    type: ResourceType
    data: ResourceData = Field(default_factory=ResourceData)

    @model_validator(mode="before")
    @classmethod
    def _lift_description(cls, values: Any) -> Any:
        # Older prompt shape put the description next to `data`.
        if not isinstance(values, dict) or not values.get("description"):
            return values
        values = dict(values)
        description = values.pop("description")
        data = values.get("data") or {}
        if isinstance(data, ResourceData):
            data = data.model_dump()
        data = dict(data)
        if not data.get("description"):
            data["description"] = description
        values["data"] = data
        return values

    @field_validator("id", mode="before")
    @classmethod
    def _ensure_id(cls, v: Any) -> str:
        return str(v) if v else new_resource_id()

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> ResourceType:
        return normalize_resource_type(v)

    @model_validator(mode="after")
    def _description_only_on_notes(self) -> "Resource":
        if self.type is not ResourceType.notes and self.data.description is not None:
            self.data = self.data.model_copy(update={"description": None})
        return self

    @property
    def is_notes(self) -> bool:
        return self.type is ResourceType.notes


# ── Tree ─────────────────────────────────────────────────────────────────────

class LeafNode(BaseModel):
    """End node: carries resources, never subtopics."""
    model_config = ConfigDict(extra="ignore")

    title: str
    is_end_node: Literal[True] = True
    resources: List[Resource] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _no_subtopics(cls, values: Any) -> Any:
        if isinstance(values, dict) and values.get("subtopics"):
            raise ValueError("An end node cannot have subtopics")
        return values

    @field_validator("resources", mode="before")
    @classmethod
    def _wrap_single_resource(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, dict):
            return [v]
        return v


class BranchNode(BaseModel):
    """Inner node: at least one subtopic, never resources."""
    model_config = ConfigDict(extra="ignore")

    title: str
    is_end_node: Literal[False] = False
    subtopics: List[MindMapNode] = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _no_resources(cls, values: Any) -> Any:
        if isinstance(values, dict) and values.get("resources"):
            raise ValueError("A node with subtopics cannot have resources")
        return values


def _node_kind(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        flag = value.get("is_end_node")
    else:
        flag = getattr(value, "is_end_node", None)
    if flag is None:
        return None
    return "leaf" if flag else "branch"


MindMapNode = Annotated[
    Union[
        Annotated[BranchNode, Tag("branch")],
        Annotated[LeafNode, Tag("leaf")],
    ],
    Discriminator(_node_kind),
]

BranchNode.model_rebuild()

_tree_adapter: TypeAdapter = TypeAdapter(MindMapNode)


def parse_tree(data: Any) -> Union[BranchNode, LeafNode]:
    """Validate a raw JSON value into a tree. Raises pydantic.ValidationError."""
    return _tree_adapter.validate_python(data)


def dump_tree(node: Union[BranchNode, LeafNode]) -> Dict[str, Any]:
    """Storage form of a tree: plain JSON types, unset optionals dropped."""
    return node.model_dump(mode="json", exclude_none=True)


# ── Request / Response ───────────────────────────────────────────────────────

class GenerateFromTopicsRequest(BaseModel):
    """Request body for mind map generation."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    chapter_id: str = Field(..., alias="chapterId", min_length=1)
    chapter_title: str = Field(..., alias="chapterTitle", min_length=1)
    topics: List[str] = Field(..., min_length=1)

    @field_validator("topics")
    @classmethod
    def _strip_topics(cls, v: List[str]) -> List[str]:
        topics = [t.strip() for t in v if t and t.strip()]
        if not topics:
            raise ValueError("At least one non-empty topic is required")
        return topics


class GenerateFromTopicsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    mind_map_id: str = Field(..., serialization_alias="mindMapId")


class MindMapDocument(BaseModel):
    """A persisted mind map as returned to clients."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., serialization_alias="_id")
    chapter_id: str = Field(..., serialization_alias="chapterId")
    content: Dict[str, Any]
    created_at: Any = Field(None, serialization_alias="createdAt")
