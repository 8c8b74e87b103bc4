# seed.py
# Fills the sandbox practice tables with Faker data and the content
# database with sample assignments (and their solutions).

import random
from datetime import date

from faker import Faker

from config import Settings
from db import WritePool
from provision import quote_identifier

DEPARTMENTS = ["Engineering", "Sales", "Marketing", "Finance", "Support"]
CITIES = ["Bengaluru", "Mumbai", "Delhi", "Chennai"]

SANDBOX_TABLES = {
    "departments": """
        CREATE TABLE IF NOT EXISTS {db}.departments (
            id INT PRIMARY KEY AUTO_INCREMENT,
            name VARCHAR(100) NOT NULL,
            budget DECIMAL(12, 2) NOT NULL
        )
    """,
    "employees": """
        CREATE TABLE IF NOT EXISTS {db}.employees (
            id INT PRIMARY KEY AUTO_INCREMENT,
            name VARCHAR(100) NOT NULL,
            email VARCHAR(150) NOT NULL,
            department_id INT NOT NULL,
            salary DECIMAL(10, 2) NOT NULL,
            hired_on DATE NOT NULL,
            manager_id INT NULL
        )
    """,
    "customers": """
        CREATE TABLE IF NOT EXISTS {db}.customers (
            id INT PRIMARY KEY AUTO_INCREMENT,
            name VARCHAR(100) NOT NULL,
            city VARCHAR(50) NOT NULL,
            age INT NOT NULL
        )
    """,
    "orders": """
        CREATE TABLE IF NOT EXISTS {db}.orders (
            id INT PRIMARY KEY AUTO_INCREMENT,
            customer_id INT NOT NULL,
            order_date DATE NOT NULL,
            amount DECIMAL(10, 2) NOT NULL,
            returned BOOLEAN NOT NULL DEFAULT FALSE
        )
    """,
}

ASSIGNMENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS assignments (
        id VARCHAR(64) PRIMARY KEY,
        title VARCHAR(200) NOT NULL,
        question_text TEXT NOT NULL,
        difficulty VARCHAR(20) NOT NULL,
        solution_sql TEXT NOT NULL,
        is_active TINYINT(1) NOT NULL DEFAULT 1
    )
"""

SAMPLE_ASSIGNMENTS = [
    {
        "id": "select-basics",
        "title": "List all departments",
        "question_text": "Return the name and budget of every department.",
        "difficulty": "easy",
        "solution_sql": "SELECT name, budget FROM departments",
    },
    {
        "id": "filter-salaries",
        "title": "Well-paid engineers",
        "question_text": "List the names of employees in department 1 earning more than 80000, highest salary first.",
        "difficulty": "easy",
        "solution_sql": (
            "SELECT name FROM employees WHERE department_id = 1 AND salary > 80000 "
            "ORDER BY salary DESC, name"
        ),
    },
    {
        "id": "join-headcount",
        "title": "Headcount per department",
        "question_text": "For each department name, return the number of employees.",
        "difficulty": "medium",
        "solution_sql": (
            "SELECT d.name, COUNT(e.id) AS headcount FROM departments d "
            "LEFT JOIN employees e ON e.department_id = d.id GROUP BY d.id, d.name"
        ),
    },
    {
        "id": "revenue-by-city",
        "title": "Revenue per city",
        "question_text": "Total non-returned order amount per customer city.",
        "difficulty": "medium",
        "solution_sql": (
            "SELECT c.city, SUM(o.amount) AS revenue FROM orders o "
            "JOIN customers c ON c.id = o.customer_id WHERE o.returned = FALSE GROUP BY c.city"
        ),
    },
]


def seed_sandbox(cursor, database: str, fake: Faker, employees=60, customers=50, orders=500):
    """Create and fill the practice tables. Returns inserted row counts per table."""
    db = quote_identifier(database)
    for ddl in SANDBOX_TABLES.values():
        cursor.execute(ddl.format(db=db))
    for table in ("orders", "customers", "employees", "departments"):
        cursor.execute(f"DELETE FROM {db}.{table}")

    # ---------- DEPARTMENTS ----------
    department_ids = []
    for name in DEPARTMENTS:
        cursor.execute(
            f"INSERT INTO {db}.departments (name, budget) VALUES (%s, %s)",
            (name, round(random.uniform(100_000, 2_000_000), 2)),
        )
        department_ids.append(cursor.lastrowid)

    # ---------- EMPLOYEES ----------
    employee_ids = []
    for _ in range(employees):
        cursor.execute(
            f"""
            INSERT INTO {db}.employees (name, email, department_id, salary, hired_on, manager_id)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                fake.name(),
                fake.unique.email(),
                random.choice(department_ids),
                round(random.uniform(35_000, 150_000), 2),
                fake.date_between(start_date=date(2015, 1, 1), end_date="today"),
                random.choice(employee_ids) if employee_ids and random.random() < 0.8 else None,
            ),
        )
        employee_ids.append(cursor.lastrowid)

    # ---------- CUSTOMERS ----------
    customer_ids = []
    for _ in range(customers):
        cursor.execute(
            f"INSERT INTO {db}.customers (name, city, age) VALUES (%s, %s, %s)",
            (fake.name(), random.choice(CITIES), random.randint(18, 65)),
        )
        customer_ids.append(cursor.lastrowid)

    # ---------- ORDERS ----------
    for _ in range(orders):
        cursor.execute(
            f"""
            INSERT INTO {db}.orders (customer_id, order_date, amount, returned)
            VALUES (%s, %s, %s, %s)
            """,
            (
                random.choice(customer_ids),
                fake.date_between(start_date="-1y", end_date="today"),
                round(random.uniform(100, 5000), 2),
                random.choice([0, 0, 0, 1]),  # ~25% returns
            ),
        )

    return {
        "departments": len(department_ids),
        "employees": len(employee_ids),
        "customers": len(customer_ids),
        "orders": orders,
    }


def seed_assignments(cursor, assignments=SAMPLE_ASSIGNMENTS):
    cursor.execute(ASSIGNMENTS_TABLE)
    for a in assignments:
        cursor.execute(
            """
            INSERT INTO assignments (id, title, question_text, difficulty, solution_sql)
            VALUES (%s, %s, %s, %s, %s)
            ON DUPLICATE KEY UPDATE
                title = VALUES(title),
                question_text = VALUES(question_text),
                difficulty = VALUES(difficulty),
                solution_sql = VALUES(solution_sql)
            """,
            (a["id"], a["title"], a["question_text"], a["difficulty"], a["solution_sql"]),
        )
    return len(assignments)


def run_seed(pool: WritePool, settings: Settings, seed: int | None = None):
    fake = Faker()
    if seed is not None:
        Faker.seed(seed)
        random.seed(seed)

    with pool.connection() as conn:
        cursor = conn.cursor()
        try:
            counts = seed_sandbox(cursor, settings.sandbox_db_name, fake)
            counts["assignments"] = seed_assignments(cursor)
            conn.commit()
        finally:
            cursor.close()
    return counts


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed sandbox practice tables and sample assignments")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    args = parser.parse_args()

    settings = Settings.from_env()
    pool = WritePool(settings)
    try:
        counts = run_seed(pool, settings, seed=args.seed)
    finally:
        pool.close()

    print(f"✅ MySQL database seeded successfully: {counts}")
