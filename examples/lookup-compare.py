import sys
import time

import pandas
import psutil
import pyarrow.compute as pc

from keytables import Table, col
from keytables.compute import FunctionCallExpression

try:
    lookup_type = sys.argv[1]
except IndexError:
    lookup_type = None

passengers = Table.read_csv("data/passengers.csv")
ids = list(range(1, 100001, 97))

if lookup_type == "key":
    passengers.set_key("PassengerId")

    def run():
        for passenger_id in ids:
            passengers.lookup(passenger_id)

elif lookup_type == "scan":

    def run():
        for passenger_id in ids:
            passengers.filter(
                FunctionCallExpression(pc.equal, col("PassengerId"), passenger_id)
            )

elif lookup_type == "pandas":
    df = pandas.read_csv("data/passengers.csv").set_index("PassengerId").sort_index()

    def run():
        for passenger_id in ids:
            df.loc[[passenger_id]]

else:
    print("Lookup must be key, scan or pandas")
    sys.exit(1)

proc = psutil.Process()
start = time.time()
run()
end = time.time()

print(
    "TIME:",
    round(end - start, 1),
    "MEMORY:",
    proc.memory_full_info().rss // (1024 * 1024),
)
