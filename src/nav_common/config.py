# src/nav_common/config.py
import os
from dotenv import load_dotenv

# Load environment variables from a .env file for local development.
load_dotenv()


# Service identity
SERVICE_NAME = os.getenv("SERVICE_NAME", "nav-analytics-service")
ENVIRONMENT = os.getenv("ENVIRONMENT", "local")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Simulation defaults
RISK_FREE_RATE_PCT = float(os.getenv("RISK_FREE_RATE_PCT", "6.0"))
SIP_LOOKAHEAD_DAYS = int(os.getenv("SIP_LOOKAHEAD_DAYS", "7"))

# Rolling returns
ROLLING_NOTIONAL_AMOUNT = os.getenv("ROLLING_NOTIONAL_AMOUNT", "100000")
ROLLING_MAX_GAP_DAYS = int(os.getenv("ROLLING_MAX_GAP_DAYS", "7"))
# Number of window starts evaluated per chunk before yielding to the event loop.
ROLLING_CHUNK_SIZE = int(os.getenv("ROLLING_CHUNK_SIZE", "250"))
