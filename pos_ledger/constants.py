# pos_ledger/constants.py
APP_NAME = "POS Ledger"

DATA_DIR = "data"
DB_FILE_NAME = "pos_ledger.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# invoice / order numbering
NUMBER_WIDTH = 4
SEQ_INVOICE = "invoice"
SEQ_ORDER = "order"
RETURN_ORDER_PREFIX = "RTN-"
EXCHANGE_ORDER_PREFIX = "EXC-"

MONEY_PLACES = 2
DEFAULT_TOP_COUNT = 10

DATETIME_FMT = "%Y-%m-%d %H:%M:%S"
