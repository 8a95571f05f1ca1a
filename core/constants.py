"""
Shared constants for smtplemail: SMTP defaults, file locations, exit codes.
Use these instead of hardcoding port, timeout, or paths across modules.
"""
# SMTP
SMTP_PORT = 25
SMTP_PORT_SUBMISSION = 587
SMTP_PORT_SMTPS = 465
SMTP_TIMEOUT = 30.0

# Security modes (smtp_security)
SECURITY_SSL = "SSL"
SECURITY_TLS = "TLS"
SECURITY_NONE = "None"
SECURITY_MODES = (SECURITY_SSL, SECURITY_TLS, SECURITY_NONE)
DEFAULT_SECURITY = SECURITY_TLS

DEFAULT_PORTS = {
    SECURITY_SSL: SMTP_PORT_SMTPS,
    SECURITY_TLS: SMTP_PORT_SUBMISSION,
    SECURITY_NONE: SMTP_PORT,
}

# Files
DEFAULT_CONFIG_FILE = "/etc/smtplemail/smtplemail.conf"
DEFAULT_LOG_FILE = "/var/log/smtplemail/smtplemail.log"
DEFAULT_SENDMAIL_PATH = "/usr/sbin/sendmail"

# Log levels accepted in config (log_level)
LOG_LEVEL_ERROR = "error"
LOG_LEVEL_INFO = "info"
LOG_LEVELS = (LOG_LEVEL_ERROR, LOG_LEVEL_INFO)

# Exit codes (sysexits.h)
EXIT_SUCCESS = 0
EXIT_DATAERR = 65
EXIT_UNAVAILABLE = 69
EXIT_SOFTWARE = 70
EXIT_TEMPFAIL = 75
EXIT_CONFIG = 78
