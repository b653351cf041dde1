import asyncio

from recordset.orm.literals import CLIENTIP, NOW
from recordset.orm.recordset import RecordSet
from recordset.services.executor import HTTPExecutor


async def main():
    # expects `python run_executor.py --seed` running
    executor = HTTPExecutor("http://127.0.0.1:9002")

    product = await RecordSet.open("products", info="demo", executor=executor, dialect="sqlite")
    print("Primary key:", product.primary_keys[0])

    print("Loading one product...")
    loaded = await product.load("productcode", "RR013840_0001")
    print("Loaded:", loaded, "name =", product.get("name"))

    print("Updating price...")
    product.set("price", 12.5)
    print("Saved:", await product.save(), product.get_sql())

    print("Products and stock side by side...")
    merged = RecordSet("products", "productcode", info="demo", executor=executor)
    await merged.load("productcode", "RR013840_0002", ["name", "on_sale"])
    await merged.union("stock", "productcode", "productcode", "RR013840_0002", ["quantity", "on_sale"])
    merged.squash()
    print(merged)

    print("Creating a user...")
    user = RecordSet("users", "id", info="demo", executor=executor)
    user.set("name", "Demo User")
    user.set("email", "demo@example.com")
    user.set("last_seen", NOW)
    user.set("last_ip", CLIENTIP)
    print("Inserted:", await user.save(), "id =", user.get("id"))

    print("Deleting the user...")
    print("Deleted:", await user.delete("id", user.get("id")))

    await executor.close()


if __name__ == "__main__":
    asyncio.run(main())
