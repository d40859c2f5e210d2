import pyarrow.compute as pc

from keytables.compute import (
    AggregateNode,
    CSVDataSource,
    FilterNode,
    FunctionCallExpression,
    MeanAggregation,
    col,
)

query = AggregateNode(
    ["Pclass"],
    {"mean_fare": MeanAggregation("Fare")},
    FilterNode(
        FunctionCallExpression(pc.equal, col("Sex"), "female"),
        CSVDataSource("data/passengers.csv"),
    ),
    ordered=True,
)
print(query)
for batch in query.batches():
    print("---")
    print(batch.to_pydict())
