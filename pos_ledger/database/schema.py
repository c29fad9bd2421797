from pathlib import Path
import sqlite3
import sys

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- products -------- */
CREATE TABLE IF NOT EXISTS products (
    product_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    name              TEXT NOT NULL,
    price             REAL NOT NULL DEFAULT 0 CHECK (price >= 0),
    /* wholesale cost basis; NULL or 0 means "unknown" => no cost, no profit */
    carton_price      REAL CHECK (carton_price IS NULL OR carton_price >= 0),
    /* carton_price / quantity_at_entry, frozen on create/edit */
    cost_per_unit     REAL,
    quantity_at_entry INTEGER,
    quantity          INTEGER NOT NULL DEFAULT 0,
    color             TEXT,
    size              TEXT,
    created_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%S','now','localtime'))
);
CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);

/* -------- customers -------- */
CREATE TABLE IF NOT EXISTS customers (
    customer_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    phone        TEXT NOT NULL,
    address      TEXT,
    email        TEXT,
    created_at   TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%S','now','localtime'))
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_customers_phone ON customers(phone);

/* -------- customer ledger -------- */
CREATE TABLE IF NOT EXISTS customer_transactions (
    transaction_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id     INTEGER NOT NULL,
    product_id      INTEGER NOT NULL,
    kind            INTEGER NOT NULL DEFAULT 1 CHECK (kind IN (1,2,3,4)),
    quantity        INTEGER NOT NULL,
    price           REAL NOT NULL DEFAULT 0,
    discount        REAL NOT NULL DEFAULT 0 CHECK (discount >= 0),
    total_price     REAL NOT NULL DEFAULT 0,
    shipping_cost   REAL NOT NULL DEFAULT 0,
    amount_paid     REAL NOT NULL DEFAULT 0,
    /* carton_price snapshot at creation; NULL on legacy rows */
    unit_cost       REAL,
    invoice_number  TEXT,
    color           TEXT,
    size            TEXT,
    notes           TEXT,
    date            TEXT NOT NULL,
    /* total_price carries the sign of quantity */
    CHECK (total_price * quantity >= 0),
    CHECK (quantity <> 0 OR total_price = 0),
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id) ON DELETE RESTRICT,
    FOREIGN KEY (product_id)  REFERENCES products(product_id)   ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_ctx_date     ON customer_transactions(date);
CREATE INDEX IF NOT EXISTS idx_ctx_customer ON customer_transactions(customer_id);
CREATE INDEX IF NOT EXISTS idx_ctx_invoice  ON customer_transactions(invoice_number);

/* -------- invoices (immutable snapshot) -------- */
CREATE TABLE IF NOT EXISTS invoices (
    invoice_id              INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_number          TEXT NOT NULL,
    order_number            TEXT,
    customer_id             INTEGER NOT NULL,
    invoice_date            TEXT NOT NULL,
    invoice_type            INTEGER NOT NULL DEFAULT 1 CHECK (invoice_type BETWEEN 1 AND 5),
    status                  INTEGER NOT NULL DEFAULT 2 CHECK (status BETWEEN 1 AND 10),
    subtotal                REAL NOT NULL DEFAULT 0,
    total_amount            REAL NOT NULL DEFAULT 0,
    amount_paid             REAL NOT NULL DEFAULT 0,
    remaining_amount        REAL NOT NULL DEFAULT 0,
    discount                REAL NOT NULL DEFAULT 0,
    /* display-only; never part of any total */
    shipping_cost           REAL NOT NULL DEFAULT 0,
    shipping_type           INTEGER NOT NULL DEFAULT 3 CHECK (shipping_type BETWEEN 1 AND 3),
    order_origin            INTEGER CHECK (order_origin IS NULL OR order_origin BETWEEN 1 AND 8),
    original_invoice_number TEXT,
    notes                   TEXT,
    created_by              TEXT,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id) ON DELETE RESTRICT
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_invoices_number ON invoices(invoice_number);
CREATE UNIQUE INDEX IF NOT EXISTS ux_invoices_order  ON invoices(order_number) WHERE order_number IS NOT NULL;

CREATE TABLE IF NOT EXISTS invoice_items (
    item_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id     INTEGER NOT NULL,
    transaction_id INTEGER,
    product_id     INTEGER NOT NULL,
    product_name   TEXT NOT NULL,
    kind           INTEGER NOT NULL DEFAULT 1 CHECK (kind IN (1,2,3,4)),
    quantity       INTEGER NOT NULL,
    unit_price     REAL NOT NULL,
    discount       REAL NOT NULL DEFAULT 0,
    total_price    REAL NOT NULL,
    color          TEXT,
    size           TEXT,
    notes          TEXT,
    CHECK (total_price * quantity >= 0),
    FOREIGN KEY (invoice_id) REFERENCES invoices(invoice_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id);

/* -------- monotonic counters for invoice/order numbers -------- */
CREATE TABLE IF NOT EXISTS sequences (
    name  TEXT PRIMARY KEY,
    value INTEGER NOT NULL CHECK (value >= 0)
);

/* -------- return / exchange tracking -------- */
CREATE TABLE IF NOT EXISTS return_trackings (
    return_id               INTEGER PRIMARY KEY AUTOINCREMENT,
    original_invoice_number TEXT NOT NULL,
    return_invoice_number   TEXT NOT NULL,
    product_id              INTEGER NOT NULL,
    returned_quantity       INTEGER NOT NULL CHECK (returned_quantity > 0),
    transaction_id          INTEGER,
    reason                  TEXT,
    created_at              TEXT NOT NULL,
    created_by              TEXT,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_returns_orig ON return_trackings(original_invoice_number, product_id);

CREATE TABLE IF NOT EXISTS exchange_trackings (
    exchange_id             INTEGER PRIMARY KEY AUTOINCREMENT,
    original_invoice_number TEXT NOT NULL,
    exchange_invoice_number TEXT NOT NULL,
    old_product_id          INTEGER NOT NULL,
    new_product_id          INTEGER NOT NULL,
    exchanged_quantity      INTEGER NOT NULL CHECK (exchanged_quantity > 0),
    price_difference        REAL NOT NULL DEFAULT 0,
    reason                  TEXT,
    created_at              TEXT NOT NULL,
    created_by              TEXT,
    returned_transaction_id INTEGER,
    issued_transaction_id   INTEGER,
    FOREIGN KEY (old_product_id) REFERENCES products(product_id),
    FOREIGN KEY (new_product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_exchanges_orig ON exchange_trackings(original_invoice_number, old_product_id);

/* -------- daily inventory aggregate -------- */
CREATE TABLE IF NOT EXISTS daily_inventories (
    daily_inventory_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    inventory_date         TEXT NOT NULL,
    status                 INTEGER NOT NULL DEFAULT 1 CHECK (status IN (1,2)),
    total_sales            REAL NOT NULL DEFAULT 0,
    total_cost             REAL NOT NULL DEFAULT 0,
    total_discounts        REAL NOT NULL DEFAULT 0,
    net_profit             REAL NOT NULL DEFAULT 0,
    total_payments         REAL NOT NULL DEFAULT 0,
    total_debts            REAL NOT NULL DEFAULT 0,
    transactions_count     INTEGER NOT NULL DEFAULT 0,
    customers_count        INTEGER NOT NULL DEFAULT 0,
    products_sold_count    INTEGER NOT NULL DEFAULT 0,
    total_quantity_sold    INTEGER NOT NULL DEFAULT 0,
    returns_count          INTEGER NOT NULL DEFAULT 0,
    exchanges_count        INTEGER NOT NULL DEFAULT 0,
    pending_reconciliation INTEGER NOT NULL DEFAULT 0 CHECK (pending_reconciliation IN (0,1)),
    aggregation_version    INTEGER NOT NULL DEFAULT 0,
    notes                  TEXT,
    closed_by              TEXT,
    closed_at              TEXT,
    created_at             TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%S','now','localtime')),
    updated_at             TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_daily_inventories_date ON daily_inventories(inventory_date);

CREATE TABLE IF NOT EXISTS daily_product_summaries (
    summary_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    daily_inventory_id  INTEGER NOT NULL,
    product_id          INTEGER NOT NULL,
    product_name        TEXT,
    starting_quantity   INTEGER NOT NULL DEFAULT 0,
    ending_quantity     INTEGER NOT NULL DEFAULT 0,
    total_quantity_sold INTEGER NOT NULL DEFAULT 0,
    total_sales_value   REAL NOT NULL DEFAULT 0,
    total_cost_value    REAL NOT NULL DEFAULT 0,
    total_discounts     REAL NOT NULL DEFAULT 0,
    net_sales_value     REAL NOT NULL DEFAULT 0,
    net_profit          REAL NOT NULL DEFAULT 0,
    transactions_count  INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (daily_inventory_id) REFERENCES daily_inventories(daily_inventory_id) ON DELETE CASCADE
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_dps_day_product ON daily_product_summaries(daily_inventory_id, product_id);

CREATE TABLE IF NOT EXISTS daily_customer_summaries (
    summary_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    daily_inventory_id    INTEGER NOT NULL,
    customer_id           INTEGER NOT NULL,
    customer_name         TEXT,
    transactions_count    INTEGER NOT NULL DEFAULT 0,
    total_purchases       REAL NOT NULL DEFAULT 0,
    total_payments        REAL NOT NULL DEFAULT 0,
    debt_amount           REAL NOT NULL DEFAULT 0,
    last_transaction_time TEXT,
    FOREIGN KEY (daily_inventory_id) REFERENCES daily_inventories(daily_inventory_id) ON DELETE CASCADE
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_dcs_day_customer ON daily_customer_summaries(daily_inventory_id, customer_id);

CREATE TABLE IF NOT EXISTS daily_sale_transactions (
    sale_id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    daily_inventory_id      INTEGER NOT NULL,
    customer_transaction_id INTEGER,
    customer_id             INTEGER NOT NULL,
    product_id              INTEGER NOT NULL,
    kind                    INTEGER NOT NULL DEFAULT 1,
    quantity                INTEGER NOT NULL,
    unit_price              REAL NOT NULL,
    cost_price              REAL NOT NULL DEFAULT 0,
    discount                REAL NOT NULL DEFAULT 0,
    total_price             REAL NOT NULL,
    amount_paid             REAL NOT NULL DEFAULT 0,
    transaction_time        TEXT NOT NULL,
    FOREIGN KEY (daily_inventory_id) REFERENCES daily_inventories(daily_inventory_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_dst_day ON daily_sale_transactions(daily_inventory_id);

/* -------- failed side-channel updates waiting for a replay -------- */
CREATE TABLE IF NOT EXISTS pending_reconciliations (
    pending_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    inventory_date TEXT NOT NULL,
    kind           TEXT NOT NULL,
    reference      TEXT,
    error          TEXT,
    created_at     TEXT NOT NULL,
    resolved_at    TEXT
);
CREATE INDEX IF NOT EXISTS idx_pending_open ON pending_reconciliations(inventory_date) WHERE resolved_at IS NULL;

/* -------- activity log -------- */
CREATE TABLE IF NOT EXISTS activity_logs (
    log_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    action      TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id   INTEGER,
    entity_name TEXT,
    details     TEXT,
    user_id     TEXT,
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%S','now','localtime'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_logs(created_at);

/* ======================== TRIGGERS ======================== */

/* invoice lines are a snapshot */
DROP TRIGGER IF EXISTS trg_invoice_items_immutable;
CREATE TRIGGER trg_invoice_items_immutable
BEFORE UPDATE ON invoice_items
BEGIN
  SELECT RAISE(ABORT, 'Invoice items are immutable');
END;

/* cumulative returned + exchanged quantity never exceeds the sold quantity */
DROP TRIGGER IF EXISTS trg_return_trackings_cap;
CREATE TRIGGER trg_return_trackings_cap
BEFORE INSERT ON return_trackings
BEGIN
  SELECT CASE
    WHEN NEW.returned_quantity
       + COALESCE((SELECT SUM(returned_quantity) FROM return_trackings
                    WHERE original_invoice_number = NEW.original_invoice_number
                      AND product_id = NEW.product_id), 0)
       + COALESCE((SELECT SUM(exchanged_quantity) FROM exchange_trackings
                    WHERE original_invoice_number = NEW.original_invoice_number
                      AND old_product_id = NEW.product_id), 0)
       > COALESCE((SELECT SUM(ii.quantity)
                     FROM invoice_items ii
                     JOIN invoices i ON i.invoice_id = ii.invoice_id
                    WHERE i.invoice_number = NEW.original_invoice_number
                      AND ii.product_id = NEW.product_id
                      AND ii.quantity > 0), 0)
    THEN RAISE(ABORT, 'Returned quantity exceeds quantity sold on the original invoice')
  END;
END;

DROP TRIGGER IF EXISTS trg_exchange_trackings_cap;
CREATE TRIGGER trg_exchange_trackings_cap
BEFORE INSERT ON exchange_trackings
BEGIN
  SELECT CASE
    WHEN NEW.exchanged_quantity
       + COALESCE((SELECT SUM(returned_quantity) FROM return_trackings
                    WHERE original_invoice_number = NEW.original_invoice_number
                      AND product_id = NEW.old_product_id), 0)
       + COALESCE((SELECT SUM(exchanged_quantity) FROM exchange_trackings
                    WHERE original_invoice_number = NEW.original_invoice_number
                      AND old_product_id = NEW.old_product_id), 0)
       > COALESCE((SELECT SUM(ii.quantity)
                     FROM invoice_items ii
                     JOIN invoices i ON i.invoice_id = ii.invoice_id
                    WHERE i.invoice_number = NEW.original_invoice_number
                      AND ii.product_id = NEW.old_product_id
                      AND ii.quantity > 0), 0)
    THEN RAISE(ABORT, 'Exchanged quantity exceeds quantity sold on the original invoice')
  END;
END;
"""


def _ensure_daily_counters(conn: sqlite3.Connection) -> None:
    """
    Safe migration for older DBs whose `daily_inventories` predates the numeric
    return/exchange counters and the reconciliation bookkeeping columns.
    """
    cols = {row[1] for row in conn.execute("PRAGMA table_info(daily_inventories);").fetchall()}
    wanted = {
        "returns_count": "INTEGER NOT NULL DEFAULT 0",
        "exchanges_count": "INTEGER NOT NULL DEFAULT 0",
        "pending_reconciliation": "INTEGER NOT NULL DEFAULT 0",
        "aggregation_version": "INTEGER NOT NULL DEFAULT 0",
    }
    for name, decl in wanted.items():
        if name not in cols:
            conn.execute(f"ALTER TABLE daily_inventories ADD COLUMN {name} {decl};")


def _ensure_transaction_kind(conn: sqlite3.Connection) -> None:
    """Older ledgers lack `kind`/`unit_cost`; add them (legacy rows default to SALE)."""
    cols = {row[1] for row in conn.execute("PRAGMA table_info(customer_transactions);").fetchall()}
    if "kind" not in cols:
        conn.execute("ALTER TABLE customer_transactions ADD COLUMN kind INTEGER NOT NULL DEFAULT 1;")
        conn.execute("UPDATE customer_transactions SET kind = 2 WHERE quantity < 0;")
    if "unit_cost" not in cols:
        conn.execute("ALTER TABLE customer_transactions ADD COLUMN unit_cost REAL;")


def _ensure_exchange_legs(conn: sqlite3.Connection) -> None:
    """Link each exchange tracking row to its returned and issued ledger rows."""
    cols = {row[1] for row in conn.execute("PRAGMA table_info(exchange_trackings);").fetchall()}
    for name in ("returned_transaction_id", "issued_transaction_id"):
        if name not in cols:
            conn.execute(f"ALTER TABLE exchange_trackings ADD COLUMN {name} INTEGER;")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_exchanges_legs "
        "ON exchange_trackings(returned_transaction_id, issued_transaction_id);"
    )


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the idempotent DDL and migrations on an open connection."""
    conn.executescript(SQL)
    _ensure_daily_counters(conn)
    _ensure_transaction_kind(conn)
    _ensure_exchange_legs(conn)
    conn.commit()


def init_schema(db_path: Path | str = "pos_ledger.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[2] / "data" / "pos_ledger.db"
    init_schema(target)
    print(f"schema applied to {target}")
