import asyncio
import logging

import pytest

from recordset.orm.literals import CLIENTIP, NOW
from recordset.orm.recordset import LoadOptions, RecordSet
from recordset.services.executor import ExecutorResult, TransportError


def ok(*rows, **extra):
    return ExecutorResult(success="Y", data=list(rows), **extra)


def failed(error):
    return ExecutorResult(success="N", error=error)


@pytest.mark.asyncio
async def test_missing_table_disables_everything(fake, caplog):
    caplog.set_level(logging.ERROR)
    rs = RecordSet("", "id", executor=fake)
    assert rs.disabled
    assert rs.tables == [] and rs.primary_keys == []
    assert await rs.load("id", 1) is False
    assert rs.set("name", "x") is False
    assert await rs.join("users") is False
    assert await rs.save() is False
    assert await rs.delete("id", 1) is False
    assert fake.calls == []
    assert "Table is not specified" in caplog.text


@pytest.mark.asyncio
async def test_load_bare_column_without_params_selects_nulls(fake, caplog):
    caplog.set_level(logging.WARNING)
    rs = RecordSet("ws_calendar", "id", info="calendar", executor=fake)
    assert await rs.load("jobid") is True
    assert fake.calls == [("SELECT * FROM ws_calendar WHERE jobid IS NULL", [])]
    assert "Are you sure this is right?" in caplog.text


@pytest.mark.asyncio
async def test_load_appends_rows_in_executor_order(fake):
    fake.respond(ok({"id": 2, "name": "b"}, {"id": 1, "name": "a"}))
    rs = RecordSet("products", "id", executor=fake)
    assert await rs.load("region", "EU") is True
    assert fake.calls == [("SELECT * FROM products WHERE region = ?", ["EU"])]
    assert rs.get("name") == ["b", "a"]
    assert rs.columns == ["id", "name"]
    assert rs.num_rows == 2


@pytest.mark.asyncio
async def test_load_single_row_unwraps(fake):
    fake.respond(ok({"productcode": "RR1", "description": "Widget"}))
    rs = RecordSet("product", "productcode", executor=fake)
    await rs.load("productcode", "RR1")
    assert rs.get("description") == "Widget"


@pytest.mark.asyncio
async def test_load_with_options(fake):
    rs = RecordSet("ws_calendar", "id", executor=fake)
    await rs.load(LoadOptions(
        where="status != ? and status != ? and jobcat = ? and position > ? and jobid is not null",
        params=["Complete", "Deleted", "BIKE", 0],
        columns=["jobid", "position"],
        sort="position",
        group=["jobid", "position"],
        limit=5,
    ))
    sql, params = fake.calls[0]
    assert sql == (
        "SELECT id, jobid, position FROM ws_calendar "
        "WHERE status != ? and status != ? and jobcat = ? and position > ? and jobid is not null "
        "GROUP BY jobid, position ORDER BY position LIMIT 5"
    )
    assert params == ["Complete", "Deleted", "BIKE", 0]


@pytest.mark.asyncio
async def test_load_accepts_dict_options(fake):
    rs = RecordSet("customer", "customercode", executor=fake)
    await rs.load({"where": "customercode", "params": "C1", "columns": "emailinvoice"})
    assert fake.sql == ["SELECT customercode, emailinvoice FROM customer WHERE customercode = ?"]


@pytest.mark.asyncio
async def test_load_sets_last_query(fake):
    rs = RecordSet("product", "productcode", executor=fake)
    await rs.load("productcode", "RR1")
    assert rs.get_sql() == "SELECT * FROM product WHERE productcode = 'RR1'"

    fake.respond(ok(nice_sql="from the executor"))
    await rs.load("productcode", "RR1")
    assert rs.last_query == "from the executor"


@pytest.mark.asyncio
async def test_load_unknown_slot(fake):
    rs = RecordSet("product", "productcode", executor=fake)
    assert await rs.load(table_index=3) is False
    assert "ORM00" in rs.last_error
    assert fake.calls == []


@pytest.mark.asyncio
async def test_query_error_is_captured(fake):
    fake.respond(failed("Table 'shop.prodcut' doesn't exist"))
    rs = RecordSet("prodcut", "id", info="file:7", executor=fake)
    assert await rs.load("id", 1) is False
    assert rs.last_error.startswith("Error ORM01 file:7.load('id', 1);")
    assert "doesn't exist" in rs.get_error()
    assert "SQL: SELECT * FROM prodcut WHERE id = ?" in rs.last_error
    assert "Info: file:7" in rs.last_error
    assert rs.is_empty()


@pytest.mark.asyncio
async def test_unknown_column_hint(fake):
    fake.respond(failed("SQLSTATE[42S22]: Column not found: 1054 Unknown column 'colour' in 'where clause'"))
    rs = RecordSet("product", "id", info="file:7", executor=fake)
    assert await rs.load("colour", "red") is False
    assert 'Hint: Column "colour" does not exist in table "product" file:7' in rs.last_error


@pytest.mark.asyncio
async def test_transport_error_is_captured(fake):
    fake.respond(TransportError("Bad Gateway", "<html>502</html>", "Server error '502 Bad Gateway'"))
    rs = RecordSet("product", "id", info="file:7", executor=fake)
    assert await rs.load("id", 1) is False
    assert "Error ORM02" in rs.last_error
    assert "Status: Bad Gateway" in rs.last_error
    assert "Response: <html>502</html>" in rs.last_error
    assert "SQL: SELECT * FROM product WHERE id = 1" in rs.last_error


@pytest.mark.asyncio
async def test_join_with_left_only(fake):
    rs = RecordSet("product", "productcode", executor=fake)
    assert await rs.join("stock", "productcode") is True
    assert rs.tables == ["product INNER JOIN stock ON stock.productcode = product.productcode"]
    assert rs.primary_keys == ["product.productcode"]


@pytest.mark.asyncio
async def test_join_with_both_sides_and_type(fake):
    rs = RecordSet("product", "id", executor=fake)
    assert await rs.join("users", "id", "created_by", "left join") is True
    assert rs.tables == ["product LEFT JOIN users ON users.id = product.created_by"]


@pytest.mark.asyncio
async def test_join_keeps_expressions(fake):
    rs = RecordSet("product", "id", executor=fake)
    await rs.join("users", "users.id", "coalesce(product.created_by, product.updated_by)")
    assert rs.tables[0].endswith("ON users.id = coalesce(product.created_by, product.updated_by)")


@pytest.mark.asyncio
async def test_join_without_columns_uses_primary_keys(fake):
    fake.respond(ok({"column_name": "userid"}))
    rs = RecordSet("orders", "id", executor=fake, dialect="mysql")
    assert await rs.join("users") is True
    assert "information_schema.statistics" in fake.calls[0][0]
    assert fake.calls[0][1] == ["users"]
    assert rs.tables == ["orders INNER JOIN users ON users.userid = orders.id"]


@pytest.mark.asyncio
async def test_join_unknown_type_warns(fake, caplog):
    caplog.set_level(logging.WARNING)
    rs = RecordSet("product", "id", executor=fake)
    await rs.join("users", "id", None, "sideways")
    assert "sideways JOIN users" in rs.tables[0]
    assert 'Join type "sideways"' in caplog.text


@pytest.mark.asyncio
async def test_join_needs_a_table(fake):
    rs = RecordSet("product", "id", executor=fake)
    assert await rs.join(None) is False
    assert rs.tables == ["product"]


@pytest.mark.asyncio
async def test_load_after_join_qualifies_key(fake):
    rs = RecordSet("product", "productcode", executor=fake)
    await rs.join("stock", "productcode")
    await rs.load("stock.quantity > ?", 0, ["description", "quantity"])
    assert fake.sql[-1] == (
        "SELECT product.productcode, description, quantity FROM product "
        "INNER JOIN stock ON stock.productcode = product.productcode WHERE stock.quantity > ?"
    )


@pytest.mark.asyncio
async def test_union_and_squash(fake):
    fake.respond(
        ok({"productcode": "RR1", "on_sale": 1, "instock": 0, "price": 79.95}),
        ok({"productcode": "RR1", "on_sale": 0, "instock": 1, "price": 0}),
    )
    rs = RecordSet("product", "productcode", executor=fake)
    await rs.load("productcode", "RR1")
    assert await rs.union("stock", "productcode", "productcode", "RR1", ["instock"]) is True
    assert fake.sql[-1] == "SELECT productcode, instock FROM stock WHERE productcode = ?"
    assert rs.tables == ["product", "stock"]
    assert rs.primary_keys == ["productcode", "productcode"]
    assert rs.num_rows == 2

    assert rs.squash() is True
    assert rs.get() == [{"productcode": "RR1", "on_sale": 1, "instock": 1, "price": 79.95}]


@pytest.mark.asyncio
async def test_set_then_get(fake):
    rs = RecordSet("product", "id", executor=fake)
    assert rs.set("x", "v") is True
    assert rs.get("x") == "v"


@pytest.mark.asyncio
async def test_set_rejects_blank_column(fake):
    rs = RecordSet("product", "id", executor=fake)
    assert rs.set("", 1) is False
    assert "blank column" in rs.last_error


@pytest.mark.asyncio
async def test_set_rejects_unknown_table(fake):
    rs = RecordSet("product", "id", executor=fake)
    assert rs.set("qty", 1, table="stock") is False
    assert rs.columns == []


@pytest.mark.asyncio
async def test_save_inserts_row_without_key(fake):
    fake.respond(ok(last_insert_id=42))
    rs = RecordSet("logfile", "id", info="audit", executor=fake)
    rs.set("message", "hello")
    rs.set("created", NOW)
    rs.set("terminal_ip", CLIENTIP)
    assert await rs.save() is True
    assert fake.calls == [(
        "INSERT INTO logfile (message, created, terminal_ip) VALUES (?, now(), clientip())",
        ["hello"],
    )]
    assert rs.get("id") == 42
    assert rs.last_save.success


@pytest.mark.asyncio
async def test_save_updates_row_with_key(fake):
    fake.respond(ok({"id": 7, "name": "a", "price": None, "qty": 3}))
    rs = RecordSet("product", "id", executor=fake)
    await rs.load("id", 7)
    rs.set("name", "b")
    rs.set("updated", NOW)
    rs.set("till_ip", CLIENTIP)
    assert await rs.save() is True
    sql, params = fake.calls[-1]
    assert sql == "UPDATE product SET name = ?, qty = ?, updated = now(), till_ip = ? WHERE id = ?"
    assert params == ["b", 3, CLIENTIP, 7]


@pytest.mark.asyncio
async def test_save_refuses_empty_set_clause(fake):
    fake.respond(ok({"id": 7, "price": None}))
    rs = RecordSet("product", "id", executor=fake)
    await rs.load("id", 7)
    assert await rs.save() is False
    assert fake.calls == [("SELECT * FROM product WHERE id = ?", [7])]
    assert "SET  WHERE" in rs.last_error


@pytest.mark.asyncio
async def test_save_with_nothing_loaded(fake):
    rs = RecordSet("product", "id", executor=fake)
    assert await rs.save() is False
    assert fake.calls == []


@pytest.mark.asyncio
async def test_save_reports_partial_failure(fake):
    fake.respond(
        ok({"id": 1, "name": "a"}, {"id": 2, "name": "b"}),
        ok(),
        failed("Deadlock found"),
    )
    rs = RecordSet("product", "id", executor=fake)
    await rs.load("id > ?", 0)
    rs.set("name", "A", 0)
    rs.set("name", "B", 1)
    assert await rs.save() is False
    report = rs.last_save
    assert [r.success for r in report.results] == [True, False]
    assert report.failed[0].row_index == 1
    assert "ORM03" in report.failed[0].error
    assert "Deadlock found" in rs.last_error


@pytest.mark.asyncio
async def test_save_sends_owned_columns_to_their_table(fake):
    fake.respond(
        ok({"productcode": "RR1", "price": 5}),
        ok({"productcode": "RR1", "qty": 2}),
    )
    rs = RecordSet("product", "productcode", executor=fake)
    await rs.load("productcode", "RR1")
    await rs.union("stock", "productcode", "productcode", "RR1")
    rs.squash()
    rs.set("price", 6, table="product")
    rs.set("qty", 3, table="stock")
    assert await rs.save() is True
    assert fake.calls[-2:] == [
        ("UPDATE product SET price = ? WHERE productcode = ?", [6, "RR1"]),
        ("UPDATE stock SET qty = ? WHERE productcode = ?", [3, "RR1"]),
    ]


@pytest.mark.asyncio
async def test_delete(fake):
    rs = RecordSet("users", "id", executor=fake)
    assert await rs.delete("id", 3) is True
    assert fake.calls == [("DELETE FROM users WHERE id = ?", [3])]
    assert rs.get_sql() == "DELETE FROM users WHERE id = 3"


@pytest.mark.asyncio
async def test_delete_without_params_targets_nulls(fake):
    fake.respond(failed("boom"))
    rs = RecordSet("users", "id", executor=fake)
    assert await rs.delete("email") is False
    assert fake.sql == ["DELETE FROM users WHERE email IS NULL"]
    assert "ORM05" in rs.last_error


@pytest.mark.asyncio
async def test_raw_select_runs_inline(fake):
    fake.respond(ok({"ipaddress": "10.0.0.5"}))
    rs = RecordSet("users", "id", executor=fake)
    assert await rs.raw_sql("select clientip() as ipaddress") is True
    assert rs.get("ipaddress") == "10.0.0.5"


@pytest.mark.asyncio
async def test_raw_write_runs_in_background(fake):
    rs = RecordSet("users", "id", executor=fake)
    task = await rs.raw_sql("UPDATE users SET region = ? WHERE id = ?", ["EU", 1])
    assert isinstance(task, asyncio.Task)
    assert await rs.wait() is True
    assert task.result() is True
    assert fake.calls == [("UPDATE users SET region = ? WHERE id = ?", ["EU", 1])]


@pytest.mark.asyncio
async def test_background_load(fake):
    fake.respond(ok({"id": 1}))
    rs = RecordSet("users", "id", executor=fake)
    task = await rs.load("id", 1, background=True)
    assert await task is True
    assert rs.get("id") == 1


@pytest.mark.asyncio
async def test_open_discovers_primary_key(fake):
    fake.respond(ok({"column_name": "productcode"}))
    rs = await RecordSet.open("product", executor=fake, dialect="sqlite")
    assert rs.primary_keys == ["productcode"]
    assert rs.pk_discovered
    assert fake.calls == [("SELECT name AS column_name FROM pragma_table_info(?) WHERE pk = 1", ["product"])]


@pytest.mark.asyncio
async def test_primary_key_lookup_falls_back_to_id(fake):
    fake.respond(failed("no information_schema here"))
    rs = await RecordSet.open("product", executor=fake)
    assert rs.primary_keys == ["id"]


@pytest.mark.asyncio
async def test_primary_key_lookup_is_cached(fake):
    fake.respond(ok({"column_name": "productcode"}))
    await RecordSet.open("product", executor=fake)
    again = await RecordSet.open("product", executor=fake)
    assert again.primary_keys == ["productcode"]
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_render(fake):
    fake.respond(ok({"id": 1, "name": None}, {"id": 2, "name": "Gadget"}))
    rs = RecordSet("products", "id", executor=fake)
    await rs.load("id > ?", 0)
    assert str(rs) == (
        "tables: products\n"
        "pks: id\n"
        "sql: SELECT * FROM products WHERE id > 0\n"
        "data:\n"
        " # id name   \n"
        " 0 1  <null> \n"
        " 1 2  Gadget \n"
    )


@pytest.mark.asyncio
async def test_save_skips_rows_never_set(fake):
    fake.respond(ok(last_insert_id=5))
    rs = RecordSet("logfile", "id", executor=fake)
    rs.set("message", "hello", 2)
    assert rs.num_rows == 3
    assert await rs.save() is True
    assert fake.calls == [("INSERT INTO logfile (message) VALUES (?)", ["hello"])]
    assert len(rs.last_save.results) == 1
    assert rs.get(2) == {"message": "hello", "id": 5}
    assert rs.get(0) == {}


@pytest.mark.asyncio
async def test_load_dict_accepts_camel_case_options(fake):
    rs = RecordSet("product", "id", executor=fake)
    await rs.union("stock", "id")
    assert await rs.load({"where": "id", "params": 1, "tableIndex": 1}) is True
    assert fake.sql[-1] == "SELECT * FROM stock WHERE id = ?"

    task = await rs.load({"where": "id", "params": 2, "async": True})
    assert isinstance(task, asyncio.Task)
    assert await rs.wait() is True
    assert fake.calls[-1] == ("SELECT * FROM product WHERE id = ?", [2])


@pytest.mark.asyncio
@pytest.mark.parametrize("options", [{"limit": "ten"}, {"where": "id", "tabel_index": 1}])
async def test_load_rejects_bad_options(fake, options):
    rs = RecordSet("product", "id", executor=fake)
    assert await rs.load(options) is False
    assert "Error ORM00" in rs.last_error
    assert "Invalid load options" in rs.last_error
    assert fake.calls == []


@pytest.mark.asyncio
async def test_error_is_cleared_by_next_operation(fake):
    fake.respond(failed("boom"), ok({"id": 1}))
    rs = RecordSet("product", "id", executor=fake)
    assert await rs.load("id", 1) is False
    assert rs.get_error()
    assert await rs.load("id", 1) is True
    assert rs.get_error() == ""


@pytest.mark.asyncio
async def test_primary_key_not_cached_without_base_url(anonymous_fake):
    anonymous_fake.respond(ok({"column_name": "productcode"}), ok({"column_name": "productcode"}))
    await RecordSet.open("product", executor=anonymous_fake)
    again = await RecordSet.open("product", executor=anonymous_fake)
    assert again.primary_keys == ["productcode"]
    assert len(anonymous_fake.calls) == 2
