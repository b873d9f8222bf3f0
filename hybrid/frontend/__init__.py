"""Type resolution for declared C++ types."""

from .containers import (
    ContainerLowering,
    container_kind,
    extract_container_name,
    is_container,
    split_template_args,
)
from .types import TypeMapper

__all__ = [
    "ContainerLowering",
    "TypeMapper",
    "container_kind",
    "extract_container_name",
    "is_container",
    "split_template_args",
]
