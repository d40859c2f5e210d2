"""Picking and computing columns.

Queries rarely need all the columns of a table,
they usually pick some of them (``j`` in ``dt[i, j]``)
and sometimes compute new ones from the existing columns.
"""

import pyarrow as pa

from ..errors import DuplicateNameError, NotFoundError
from ..types import as_column
from .base import QueryPlanNode
from .expressions import Expression


class ProjectNode(QueryPlanNode):
    """Keep some columns and add computed ones.

    Selected columns are emitted first, in the requested order,
    followed by the projected ones.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> from keytables.compute import col, FunctionCallExpression, PyArrowTableDataSource
    >>> data = pa.record_batch({"a": [1, 2, 3], "b": [4, 5, 6]})
    >>> node = ProjectNode(["a"], {"ab_sum": FunctionCallExpression(pc.add, col("a"), col("b"))},
    ...                    PyArrowTableDataSource(data))
    >>> next(node.batches()).to_pydict()
    {'a': [1, 2, 3], 'ab_sum': [5, 7, 9]}
    """

    def __init__(
        self,
        select: list[str] | None,
        project: dict[str, Expression] | None,
        child: QueryPlanNode,
    ) -> None:
        """
        :param select: The list of column names to select.
                       ``None`` means select all columns.
                       ``[]`` means select only the projected columns.
        :param project: The dict {name: Expression} to project new columns.
        :param child: The node emitting the data to be projected.
        """
        self.select = select
        self.project = project or {}
        self.child = child

        if self.select is None:
            self.restrict_columns = None
        else:
            # In case select=[] only the projected columns are kept.
            self.restrict_columns = self.select + list(self.project.keys())
            if len(set(self.restrict_columns)) != len(self.restrict_columns):
                raise DuplicateNameError(
                    f"Projected columns must have unique names: {self.restrict_columns}"
                )

    def __str__(self) -> str:
        return f"ProjectNode(select={self.select}, project={self.project}, child={self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Compute the projected columns for each batch of the child.

        Projected columns are computed on the original batch,
        so they can't refer to each other.
        """
        for batch in self.child.batches():
            for name in self.select or ():
                if name not in batch.schema.names:
                    raise NotFoundError(f"Column {name!r} not found")

            projected = {
                name: as_column(expr.apply(batch), batch.num_rows)
                for name, expr in self.project.items()
            }
            columns = {name: batch.column(name) for name in batch.schema.names}
            columns.update(projected)

            names = self.restrict_columns
            if names is None:
                names = list(columns)
            yield pa.record_batch([columns[n] for n in names], names=names)
