"""
Configuration settings for the Hostname Naming Service.

Contains application configuration, constants, and environment settings.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_list(name: str, default: str) -> list:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Directory configuration
BASE_DIR = Path(__file__).resolve().parent.parent  # Go up to project root
DATA_DIR = Path(os.getenv("HNS_DATA_DIR", str(BASE_DIR / "data")))
TEMPLATES_FILE = Path(os.getenv("HNS_TEMPLATES_FILE", str(BASE_DIR / "templates.json")))
RESERVATIONS_DB_FILE = DATA_DIR / "reservations.json"

# Application configuration
APP_TITLE = "Hostname Naming Service"
HOST = os.getenv("HNS_HOST", "0.0.0.0")
PORT = int(os.getenv("HNS_PORT", "8080"))

# Template limits
DEFAULT_MAX_HOSTNAME_LENGTH = 63  # single DNS label

# DNS resolver configuration
DNS_SERVERS = _env_list("HNS_DNS_SERVERS", "8.8.8.8,8.8.4.4")
DNS_TIMEOUT = float(os.getenv("HNS_DNS_TIMEOUT", "5"))
DNS_DOMAIN_SUFFIX = os.getenv("HNS_DNS_DOMAIN_SUFFIX", "").strip().strip(".")

# Scanner limits
SCAN_DEFAULT_CONCURRENT = 10
SCAN_MAX_CONCURRENT = int(os.getenv("HNS_SCAN_MAX_CONCURRENT", "50"))
SCAN_MAX_HOSTNAMES = int(os.getenv("HNS_SCAN_MAX_HOSTNAMES", "5000"))
SCAN_TIMEOUT = float(os.getenv("HNS_SCAN_TIMEOUT", "120"))

# Logging
LOG_LEVEL = os.getenv("HNS_LOG_LEVEL", "info")
LOG_FILE = os.getenv("HNS_LOG_FILE", "").strip() or None
