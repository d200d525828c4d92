"""Pydantic models for the schema catalog.

the catalog describes the objects in the warehouse, their fields, and how they
relate to each other. it's read-only for the whole lifetime of the engine.
relationship declarations use the same from/to/via shape the report builder
always used, and get turned into directed edges for traversal.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from reportforge.models.formula import UnitType


class FieldType(str, Enum):
    """Declared type of a schema field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ID = "id"


class RelationshipType(str, Enum):
    """Cardinality of a declared relationship, read from the `from` side."""

    ONE_TO_MANY = "one-to-many"  # `to` carries the foreign key `via`
    MANY_TO_ONE = "many-to-one"  # `from` carries the foreign key `via`
    ONE_TO_ONE = "one-to-one"    # treated like many-to-one
    MANY_TO_MANY = "many-to-many"  # kept for documentation, never traversed


class SchemaField(BaseModel):
    """A field on a schema object."""

    name: str
    label: str | None = None
    type: FieldType = FieldType.STRING
    enum: list[str] | None = None
    unit: UnitType | None = None  # overrides unit inference for metric blocks

    @property
    def is_categorical(self) -> bool:
        return self.type == FieldType.STRING or self.enum is not None


class SchemaObject(BaseModel):
    """An object (entity type) in the catalog."""

    name: str
    label: str | None = None
    table: str | None = None  # warehouse key, defaults to the plural of name
    fields: list[SchemaField] = Field(default_factory=list)
    # timestamp candidates in priority order, first non-empty one wins
    timestamp_fields: list[str] | None = None

    def get_field(self, name: str) -> SchemaField | None:
        """Get a field by name."""
        for schema_field in self.fields:
            if schema_field.name == name:
                return schema_field
        return None

    @property
    def table_name(self) -> str:
        return self.table or f"{self.name}s"


class Relationship(BaseModel):
    """A declared relationship between two objects."""

    # `from` is a keyword so it has to go through an alias
    model_config = ConfigDict(populate_by_name=True)

    from_object: str = Field(alias="from")
    to_object: str = Field(alias="to")
    type: RelationshipType = RelationshipType.ONE_TO_MANY
    via: str
    description: str | None = None


@dataclass(frozen=True)
class Edge:
    """A directed traversal step: source_object.source_field -> target_object.target_field.

    forward edges follow a foreign key on the current row to the parent's id,
    reverse edges go from a parent id to the children that point at it.
    """

    source_object: str
    target_object: str
    source_field: str
    target_field: str

    @property
    def is_forward(self) -> bool:
        return self.target_field == "id"


class SchemaCatalog(BaseModel):
    """The full catalog: objects plus relationships."""

    objects: list[SchemaObject] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)

    def get_object(self, name: str) -> SchemaObject | None:
        """Get an object by its name or its table name."""
        for obj in self.objects:
            if obj.name == name or obj.table_name == name:
                return obj
        return None

    def get_field(self, object_name: str, field_name: str) -> SchemaField | None:
        obj = self.get_object(object_name)
        return obj.get_field(field_name) if obj else None

    def canonical_name(self, name: str) -> str:
        """Map a singular or plural spelling to the catalog's object name.

        unknown names come back unchanged - the warehouse may hold tables the
        catalog doesn't describe and that's fine.
        """
        obj = self.get_object(name)
        if obj is not None:
            return obj.name
        if name.endswith("s"):
            obj = self.get_object(name[:-1])
            if obj is not None:
                return obj.name
        return name

    def edges(self) -> list[Edge]:
        """Directed traversal edges derived from the relationship declarations.

        forward (child -> parent) edges come first so that a search prefers
        following a foreign key that's sitting on the row over scanning children.
        """
        forward: list[Edge] = []
        reverse: list[Edge] = []
        for rel in self.relationships:
            if rel.type == RelationshipType.MANY_TO_MANY:
                continue
            if rel.type == RelationshipType.ONE_TO_MANY:
                parent, child = rel.from_object, rel.to_object
            else:
                parent, child = rel.to_object, rel.from_object
            forward.append(Edge(child, parent, rel.via, "id"))
            reverse.append(Edge(parent, child, "id", rel.via))
        return forward + reverse
