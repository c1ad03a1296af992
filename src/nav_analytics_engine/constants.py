# src/nav_analytics_engine/constants.py
from decimal import Decimal

# --- Day-count conventions ---
XIRR_DAYS_IN_YEAR = Decimal("365")       # actual/365 for the XIRR exponent
ROLLING_DAYS_IN_YEAR = 365.0             # rolling-window annualization
CALENDAR_DAYS_IN_YEAR = 365.25           # simulation summaries and point-to-point CAGR
MONTHS_IN_YEAR = 12

# --- XIRR solver ---
XIRR_INITIAL_GUESS = Decimal("0.1")
XIRR_TOLERANCE = Decimal("1e-6")
XIRR_DERIVATIVE_TOLERANCE = Decimal("1e-6")
XIRR_MAX_ITERATIONS = 100
XIRR_MIN_RATE = Decimal("-0.99")

# --- Cash-flow builder ---
DEFAULT_LOOKAHEAD_DAYS = 7
WEIGHT_TOTAL = Decimal("100")
WEIGHT_TOLERANCE = Decimal("0.01")

# --- Volatility ---
MIN_VOLATILITY_OBSERVATIONS = 3

# --- Sharpe ---
DEFAULT_RISK_FREE_RATE_PCT = 6.0

# --- Rolling windows ---
DEFAULT_ROLLING_NOTIONAL = Decimal("100000")
DEFAULT_MAX_GAP_DAYS = 7
ROLLING_WINDOW_3Y_DAYS = 1095
ROLLING_WINDOW_1Y_DAYS = 365

# --- Withdrawal simulation ---
WITHDRAWAL_EPSILON = Decimal("0.005")
DEFAULT_RISK_ORDER = ["LOW", "MODERATE", "HIGH"]

# --- Status / labels ---
STATUS_OK = "OK"
STATUS_INSUFFICIENT_HISTORY = "INSUFFICIENT_HISTORY"
WINDOW_TYPE_3Y = "3Y"
WINDOW_TYPE_1Y = "1Y"
WINDOW_TYPE_INSUFFICIENT = "insufficient"
