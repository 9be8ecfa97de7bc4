import asyncio
import random
import time
from querylens.database.mysql import MySQLAdapter
from querylens.core.config import settings

DEMO_SCHEMA = "querylens_demo"

# Statements that leave interesting digests behind in performance_schema
SLOW_QUERIES = [
    "SELECT * FROM orders WHERE status = 'refunded' ORDER BY amount DESC LIMIT 50",
    "SELECT u.email, SUM(o.amount) FROM users u JOIN orders o ON o.user_id = u.id GROUP BY u.email ORDER BY 2 DESC LIMIT 20",
    "SELECT * FROM users WHERE LOWER(email) LIKE '%7@example.com'",
    "SELECT o.* FROM orders o JOIN `order_items` oi ON oi.order_id = o.id WHERE oi.sku LIKE 'SKU-1%'",
    "SELECT COUNT(DISTINCT user_id) FROM orders WHERE YEAR(created_at) = 2023 AND MONTH(created_at) = 6",
]

async def init_data():
    print(f"Connecting to database at {settings.analyzed_database.host}:{settings.analyzed_database.port}...")
    db = MySQLAdapter(settings.analyzed_database)
    await db.connect()

    try:
        print(f"Creating schema {DEMO_SCHEMA}...")
        await db.execute_query(f"CREATE DATABASE IF NOT EXISTS {DEMO_SCHEMA}")

        await db.execute_query("DROP TABLE IF EXISTS order_items", schema=DEMO_SCHEMA)
        await db.execute_query("DROP TABLE IF EXISTS orders", schema=DEMO_SCHEMA)
        await db.execute_query("DROP TABLE IF EXISTS users", schema=DEMO_SCHEMA)
        await db.execute_query("""
            CREATE TABLE users (
                id INT AUTO_INCREMENT PRIMARY KEY,
                username VARCHAR(50),
                email VARCHAR(100),
                status VARCHAR(20) DEFAULT 'active',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """, schema=DEMO_SCHEMA)
        # no index on status or created_at on purpose
        await db.execute_query("""
            CREATE TABLE orders (
                id INT AUTO_INCREMENT PRIMARY KEY,
                user_id INT,
                amount DECIMAL(10, 2),
                status VARCHAR(20) DEFAULT 'completed',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """, schema=DEMO_SCHEMA)
        await db.execute_query("""
            CREATE TABLE order_items (
                id INT AUTO_INCREMENT PRIMARY KEY,
                order_id INT NOT NULL,
                sku VARCHAR(32) NOT NULL,
                quantity INT NOT NULL DEFAULT 1
            )
        """, schema=DEMO_SCHEMA)

        USER_COUNT = 5000
        ORDER_COUNT = 100000
        BATCH_SIZE = 5000

        print(f"Inserting {USER_COUNT} users...")
        users_batch = [f"('user{i}', 'user{i}@example.com', 'active')" for i in range(1, USER_COUNT + 1)]
        for start in range(0, len(users_batch), BATCH_SIZE):
            values = ",".join(users_batch[start:start + BATCH_SIZE])
            await db.execute_query(f"INSERT INTO users (username, email, status) VALUES {values}", schema=DEMO_SCHEMA)

        print(f"Inserting {ORDER_COUNT} orders with items...")
        start_time = time.time()
        statuses = ["completed", "completed", "completed", "refunded", "pending"]
        for batch_start in range(0, ORDER_COUNT, BATCH_SIZE):
            orders_batch = []
            items_batch = []
            for i in range(batch_start + 1, min(batch_start + BATCH_SIZE, ORDER_COUNT) + 1):
                uid = random.randint(1, USER_COUNT)
                amt = round(random.uniform(10.0, 500.0), 2)
                ts = f"2023-{random.randint(1, 12):02d}-{random.randint(1, 28):02d} {random.randint(0, 23):02d}:00:00"
                orders_batch.append(f"({uid}, {amt}, '{random.choice(statuses)}', '{ts}')")
                items_batch.append(f"({i}, 'SKU-{random.randint(1, 999)}', {random.randint(1, 5)})")

            await db.execute_query(
                f"INSERT INTO orders (user_id, amount, status, created_at) VALUES {','.join(orders_batch)}",
                schema=DEMO_SCHEMA,
            )
            await db.execute_query(
                f"INSERT INTO order_items (order_id, sku, quantity) VALUES {','.join(items_batch)}",
                schema=DEMO_SCHEMA,
            )

        elapsed = time.time() - start_time
        print(f"Inserted {ORDER_COUNT} orders in {elapsed:.1f}s")

        print("Running sample slow queries...")
        for sql in SLOW_QUERIES:
            for _ in range(3):
                await db.execute_query(sql, schema=DEMO_SCHEMA)

        print(f"Successfully initialized {DEMO_SCHEMA}.")

    except Exception as e:
        print(f"Error initializing data: {e}")
    finally:
        await db.close()

if __name__ == "__main__":
    asyncio.run(init_data())
