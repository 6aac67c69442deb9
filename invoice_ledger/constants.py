APP_NAME = "Invoice & Inventory Ledger"

DATA_DIR = "data"
DB_FILE_NAME = "ledger.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# Seconds a writer waits on a locked database before sqlite3 gives up.
BUSY_TIMEOUT_SECONDS = 10.0

# ---- business policy ----
RETURN_WINDOW_DAYS = 7      # days after issue date during which returns are accepted
DEFAULT_TAX_RATE = 0.0      # percent, e.g. 5 = 5%
LOW_STOCK_THRESHOLD = 5.0   # products at or below this are flagged on the dashboard

# Bound returns by (sold - already returned) instead of the sold quantity alone.
ENFORCE_REMAINING_RETURNABLE = False

INVOICE_STATUSES = ("open", "paid", "canceled")

# float comparisons on money/quantities
EPSILON = 1e-9
