import csv
import os
import random

if not os.path.exists("data"):
    os.mkdir("data")

if not os.path.exists("data/passengers.csv"):
    # Titanic like passengers, some of them without age
    ports = ["S", "C", "Q"]
    with open("data/passengers.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["PassengerId", "Sex", "Pclass", "Age", "Fare", "Embarked"])
        for passenger_id in range(1, 100001):
            pclass = random.choice([1, 2, 3])
            age = random.randint(1, 80) if random.random() > 0.2 else ""
            fare = round(random.uniform(5, 30) * (4 - pclass) ** 2, 2)
            writer.writerow(
                [
                    passenger_id,
                    random.choice(["male", "female"]),
                    pclass,
                    age,
                    fare,
                    random.choice(ports),
                ]
            )

if not os.path.exists("data/ports.csv"):
    with open("data/ports.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["Embarked", "Port"])
        writer.writerows(
            [["S", "Southampton"], ["C", "Cherbourg"], ["Q", "Queenstown"]]
        )
