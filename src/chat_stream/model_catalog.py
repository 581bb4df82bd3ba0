"""Filtering and normalization of provider model listings."""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel

EXCLUDED_MARKERS = ("embedding", "fine-tune", "-exp")


class ChatModel(BaseModel):
    """Canonical description of a chat-capable model."""

    id: str
    object: str = "model"
    owned_by: Optional[str] = None
    name: Optional[str] = None
    description: str = ""
    created: Optional[int] = None


def _as_mapping(descriptor: Any) -> Mapping[str, Any]:
    if isinstance(descriptor, Mapping):
        return descriptor
    if hasattr(descriptor, "model_dump"):
        return descriptor.model_dump()
    return vars(descriptor)


def _contains(value: Any, marker: str) -> bool:
    return isinstance(value, str) and bool(value) and marker in value.lower()


def is_chat_capable(descriptor: Any) -> bool:
    """Return False for embeddings, fine-tunes, experimental, inactive or non-text models."""
    model = _as_mapping(descriptor)
    identifiers = (
        model.get("id"),
        model.get("name") or model.get("display_name"),
        model.get("slug") or model.get("canonical_slug"),
    )
    for marker in EXCLUDED_MARKERS:
        if any(_contains(value, marker) for value in identifiers):
            return False

    active = model.get("active")
    if isinstance(active, bool) and not active:
        return False

    architecture = model.get("architecture") or {}
    output_modalities = (
        architecture.get("output_modalities") if isinstance(architecture, Mapping) else None
    )
    if isinstance(output_modalities, list) and "text" not in output_modalities:
        return False

    return True


def normalize(descriptor: Any) -> ChatModel:
    """Map the various provider field spellings onto :class:`ChatModel`."""
    model = _as_mapping(descriptor)
    created = model.get("created")
    return ChatModel(
        id=model.get("id") or model.get("slug") or model.get("canonical_slug") or "",
        object=model.get("object") or "model",
        owned_by=model.get("owned_by") or model.get("ownedBy"),
        name=model.get("name") or model.get("display_name"),
        description=model.get("description") or "",
        created=created if isinstance(created, int) else None,
    )


def filter_chat_models(descriptors: Iterable[Any]) -> List[ChatModel]:
    """Filter then normalize, preserving input order."""
    return [normalize(d) for d in descriptors if is_chat_capable(d)]


def model_to_descriptor(model: ChatModel) -> Dict[str, Any]:
    return model.model_dump()
