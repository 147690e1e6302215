"""
Per-model search configuration.

One SearchConfig is built when a model class is declared searchable. The
class, its subclasses and every instance share it by reference.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Union

from sqlalchemy import inspect as sa_inspect

from .dirty_tracking import is_mapped_class

logger = logging.getLogger(__name__)

# attribute name -> source field/method name, callable(record), or None for "same name"
AttributeSource = Union[str, Callable[[Any], Any], None]

CREATE_TIMESTAMP_COLUMNS = ("created_at", "created_on")
UPDATE_TIMESTAMP_COLUMNS = ("updated_at", "updated_on")

# logical attribute names the index uses for record timestamps
TIMESTAMP_ATTRIBUTES = {
    "create_timestamp": "cdate",
    "update_timestamp": "mdate",
}


def underscore(name: str) -> str:
    """CamelCase class name to snake_case."""
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name).lower()


def model_has_field(model_class: type, name: str) -> bool:
    """Whether the model declares a column, attribute, method or annotation with this name."""
    # mapped columns and relationships are class attributes once the class is mapped
    if hasattr(model_class, name):
        return True
    for klass in model_class.__mro__:
        if name in getattr(klass, "__annotations__", {}):
            return True
    return False


@dataclass
class SearchConfig:
    """Search settings for one searchable model hierarchy."""
    model_class: type
    searchable_fields: List[str] = field(default_factory=lambda: ["body"])
    attributes_to_store: Dict[str, AttributeSource] = field(default_factory=dict)
    if_changed: List[str] = field(default_factory=list)
    auto_update: bool = True
    ignore_timestamp: bool = False
    backend_config: Dict[str, Any] = field(default_factory=dict)
    backend: Any = None
    tracker: Any = None
    coordinators: Dict[type, Any] = field(default_factory=dict, repr=False)

    @property
    def observed_fields(self) -> FrozenSet[str]:
        """Fields whose change makes the index entry stale."""
        names = set(self.if_changed) | set(self.searchable_fields)
        for attribute, source in self.attributes_to_store.items():
            if source is None:
                names.add(attribute)
            elif isinstance(source, str):
                names.add(source)
        return frozenset(names)

    @property
    def root_class(self) -> type:
        """Root of the model's inheritance hierarchy."""
        if is_mapped_class(self.model_class):
            return sa_inspect(self.model_class).base_mapper.class_
        return self.model_class

    @property
    def table_name(self) -> str:
        table = getattr(self.model_class, "__table__", None)
        if table is not None:
            return table.name
        return getattr(self.model_class, "__tablename__", None) or underscore(self.model_class.__name__)

    @property
    def id_attribute(self) -> str:
        if is_mapped_class(self.model_class):
            mapper = sa_inspect(self.model_class)
            return mapper.get_property_by_column(mapper.primary_key[0]).key
        return "id"

    def record_id(self, record: Any) -> Any:
        return getattr(record, self.id_attribute)

    def record_timestamps(self) -> None:
        """Store the record's create/update timestamps as cdate/mdate unless declared explicitly."""
        timestamps: Dict[str, AttributeSource] = {}
        for key, candidates in (("create_timestamp", CREATE_TIMESTAMP_COLUMNS),
                                ("update_timestamp", UPDATE_TIMESTAMP_COLUMNS)):
            column = next((c for c in candidates if model_has_field(self.model_class, c)), None)
            if column is not None:
                timestamps[TIMESTAMP_ATTRIBUTES[key]] = column

        timestamps.update(self.attributes_to_store)
        self.attributes_to_store = timestamps

    def accessor_names(self) -> Iterable[str]:
        """Every field or method name the configuration reads from a record."""
        yield from self.searchable_fields
        yield from self.if_changed
        for attribute, source in self.attributes_to_store.items():
            if source is None:
                yield attribute
            elif isinstance(source, str):
                yield source

    def missing_accessors(self) -> List[str]:
        return [name for name in self.accessor_names() if not model_has_field(self.model_class, name)]

    def coordinator_for(self, model_class: Optional[type] = None):
        """Coordinator bound to the given class of the hierarchy, built on first use."""
        from .coordinator import SearchCoordinator

        model_class = model_class or self.model_class
        coordinator = self.coordinators.get(model_class)
        if coordinator is None:
            coordinator = SearchCoordinator(self, model_class)
            self.coordinators[model_class] = coordinator
        return coordinator
