from enum import Enum

# ---- Core Enums ----

class Environment(str, Enum):
    """Valid deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

class BrokerType(str, Enum):
    """Supported brokerage backends."""
    ALPACA = "alpaca"

class Granularity(str, Enum):
    """Snapshot timeframes accepted by the history feed."""
    ONE_MINUTE = "1Min"
    FIVE_MINUTES = "5Min"
    FIFTEEN_MINUTES = "15Min"
    ONE_HOUR = "1H"
    ONE_DAY = "1D"

# ---- Ledger Enums ----

class ActivityKind(str, Enum):
    """Cash movement activity codes."""
    DEPOSIT = "CSD"
    WITHDRAWAL = "CSW"

# ---- Calculation Policies ----

class FlowAttribution(str, Enum):
    """How cash flows are attributed to a return period."""
    SAME_DAY = "same_day"
    INTERVAL = "interval"

class FillPolicy(str, Enum):
    """How missing account snapshots are treated during aggregation."""
    NONE = "none"
    FORWARD_FILL = "forward_fill"

class TodayWritePolicy(str, Enum):
    """When a synthesized today point replaces a previous one."""
    ALWAYS = "always"
    THRESHOLD = "threshold"

# ---- Error Enums ----

class ErrorLevel(str, Enum):
    """Error severity levels for logging and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class ErrorCategory(str, Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    BROKER = "broker"
    DATA = "data"
    CALCULATION = "calculation"
    SYSTEM = "system"

# ---- Logging Enums ----

class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
