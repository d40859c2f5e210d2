import logging

import pyarrow.compute as pc

from keytables import Table, col
from keytables.compute import CountAggregation, FunctionCallExpression, MeanAggregation

logging.basicConfig(level=logging.DEBUG)

passengers = Table.read_csv("data/passengers.csv")
print(passengers)

# Sorts the table in place, the key makes lookups a binary search.
passengers.set_key("Sex", "Pclass")
print(passengers.lookup("female", 1).head())
print(passengers.lookup("female", 4, nomatch="nullRow").to_pylist())

by_class = passengers.group_by(
    ["Sex", "Pclass"],
    {"N": CountAggregation(), "mean_age": MeanAggregation("Age")},
    where=FunctionCallExpression(pc.less, col("Fare"), 100),
    ordered=True,
)
print(by_class.to_pydict())

passengers.update("AgeGroup", "adult", where=FunctionCallExpression(pc.greater_equal, col("Age"), 18))
passengers.update("AgeGroup", "child", where=FunctionCallExpression(pc.less, col("Age"), 18))
print(passengers.group_by(["AgeGroup"], {"N": CountAggregation()}).to_pydict())

ports = Table.read_csv("data/ports.csv")
ports.set_key("Embarked")
with_port = ports.lookup_join(passengers.head(10))
print(with_port.to_pydict())
