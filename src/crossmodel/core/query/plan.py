"""Compiled query plans.

The compiler turns a QueryDescriptor into either a SingleSourcePlan (one
native query) or a FederatedPlan (one native query per fragment plus the
steps that merge and post-process their rows). Internally every value a plan
moves around lives in a named slot (``_c0``, ``_c1``, ...); output labels are
only attached when rows are returned to the caller.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from crossmodel.core.models.join_catalog import JoinType
from crossmodel.core.models.metadata import TypeTag
from crossmodel.core.models.query import FilterOperator, JoinOperator
from crossmodel.core.query.expressions import Expression

Dialect = Literal["postgresql", "sqlite", "mongodb"]


class NativeQuery(BaseModel):
    """A query in a source's own language, ready to dispatch.

    SQL dialects use ``text`` and ``params``; the document dialect uses
    ``collection`` and ``pipeline``. Result rows are keyed by ``fields``.
    """

    model_config = ConfigDict(frozen=True)

    dialect: Dialect
    text: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    collection: str | None = None
    pipeline: list[dict[str, Any]] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        """Human-readable rendering for logs and the CLI."""
        if self.text is not None:
            return self.text
        return f"db.{self.collection}.aggregate({json.dumps(self.pipeline, default=str)})"


class OutputColumn(BaseModel):
    """Maps an internal slot to a caller-visible column."""

    model_config = ConfigDict(frozen=True)

    label: str
    slot: str
    type_tag: TypeTag = TypeTag.UNKNOWN


class SingleSourcePlan(BaseModel):
    """All tables live in one source: a single native query does everything."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    data_source_id: int
    native_query: NativeQuery
    outputs: list[OutputColumn]


class Fragment(BaseModel):
    """Tables of one source joined locally, fetched with one native query."""

    model_config = ConfigDict(frozen=True)

    fragment_id: str
    data_source_id: int
    table_refs: list[str]
    native_query: NativeQuery
    slot_types: dict[str, TypeTag] = Field(default_factory=dict)


class MergeStep(BaseModel):
    """Hash-join the rows merged so far (left) with a fragment's rows (right)."""

    model_config = ConfigDict(frozen=True)

    fragment_id: str
    join_type: JoinType
    left_slots: list[str]
    right_slots: list[str]


class SlotComparison(BaseModel):
    """A comparison between two slots of the merged row."""

    model_config = ConfigDict(frozen=True)

    left_slot: str
    operator: JoinOperator = "="
    right_slot: str


class SlotPredicate(BaseModel):
    """A filter comparing one slot against a constant."""

    model_config = ConfigDict(frozen=True)

    slot: str
    operator: FilterOperator
    value: Any = None
    type_tag: TypeTag = TypeTag.UNKNOWN


class ComputedSlot(BaseModel):
    """A slot computed from other slots after the merge."""

    model_config = ConfigDict(frozen=True)

    slot: str
    expression: Expression


class AggregateSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    slot: str
    function: Literal["SUM", "AVG", "COUNT", "MIN", "MAX"]
    source_slot: str | None = Field(None, description="None counts rows")


class SortKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    slot: str
    descending: bool = False


class FederatedPlan(BaseModel):
    """Tables span several sources: fetch fragments, merge, then post-process.

    Post-merge order: join filters, where groups (OR of AND-groups), computed
    slots, grouping with aggregates, sort, offset/limit.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["federated"] = "federated"
    fragments: list[Fragment]
    seed_fragment_id: str
    merge_steps: list[MergeStep] = Field(default_factory=list)
    join_filters: list[SlotComparison] = Field(default_factory=list)
    where: list[list[SlotPredicate]] = Field(default_factory=list)
    computed: list[ComputedSlot] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list)
    aggregates: list[AggregateSlot] = Field(default_factory=list)
    order_by: list[SortKey] = Field(default_factory=list)
    offset: int = -1
    limit: int = -1
    outputs: list[OutputColumn]

    @property
    def data_source_ids(self) -> list[int]:
        """Distinct sources in first-seen order."""
        seen: list[int] = []
        for fragment in self.fragments:
            if fragment.data_source_id not in seen:
                seen.append(fragment.data_source_id)
        return seen

    @property
    def is_grouped(self) -> bool:
        return bool(self.group_by or self.aggregates)


CompiledPlan = SingleSourcePlan | FederatedPlan
