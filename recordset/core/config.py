import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


EXECUTOR_URL = os.getenv("RECORDSET_EXECUTOR_URL", "http://127.0.0.1:9002")
EXECUTOR_PATH = os.getenv("RECORDSET_EXECUTOR_PATH", "/orm")
HTTP_TIMEOUT = float(os.getenv("RECORDSET_HTTP_TIMEOUT", "10"))
HTTP_RETRIES = int(os.getenv("RECORDSET_HTTP_RETRIES", "3"))

# Primary key lookups are cached per executor and table
PK_CACHE_TTL = int(os.getenv("RECORDSET_PK_CACHE_TTL", "300"))
PK_DIALECT = os.getenv("RECORDSET_PK_DIALECT", "mysql")

DEBUG = _flag("RECORDSET_DEBUG")
LOG_LEVEL = os.getenv("RECORDSET_LOG_LEVEL", "INFO")

# Reference executor endpoint
SERVER_IP = os.getenv("RECORDSET_SERVER_IP")
