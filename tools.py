"""
Logging configuration with sensitive data filtering.

Provides a configured logger with automatic masking of sensitive tokens and credentials
in log output (Google master tokens, OAuth access tokens, gpsoauth credential fields).
"""

import logging
import os
import re

log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
numeric_level = getattr(logging, log_level, logging.INFO)

VERBOSE = os.getenv('VERBOSE', 'false').lower() in ('true', '1')


class SensitiveDataFilter(logging.Filter):
    """
    Logging filter that masks sensitive credentials in log output.

    Automatically detects and masks:
    - Google master tokens (shows first 6 chars)
    - OAuth access tokens (shows first 6 chars)
    - Bearer authorization headers
    - gpsoauth credential fields (Auth, Token, SID, LSID, EncryptedPasswd), both
      as key=value text and as entries of a logged response dict

    Uses regex patterns to find and replace sensitive strings while preserving
    enough context to identify which token is being used.
    """

    SENSITIVE_KEYS = ("Auth", "Token", "SID", "LSID", "EncryptedPasswd")

    def __init__(self):
        super().__init__()
        self.patterns = [
            (re.compile(r'(aas_et/[A-Za-z0-9_-]{6})[A-Za-z0-9_/+=\-]{50,}'), r'\1[google-master-token-masked]'),
            (re.compile(r'([ya]\w{0,3}\.[A-Za-z0-9_-]{6})[A-Za-z0-9_\-\.]{50,}'), r'\1[oauth-access-token-masked]'),
            (re.compile(r'(Bearer )[A-Za-z0-9_\-\.]{20,}'), r'\1[bearer-token-masked]'),
            (re.compile(r'\b((?:%s)=)[^\s&\'",]+' % "|".join(self.SENSITIVE_KEYS)), r'\1[credential-masked]'),
        ]

    def _mask(self, value):
        for pattern, replacement in self.patterns:
            value = pattern.sub(replacement, value)
        return value

    def _mask_arg(self, arg):
        if isinstance(arg, str):
            return self._mask(arg)
        if isinstance(arg, dict):
            return {
                key: "[credential-masked]" if key in self.SENSITIVE_KEYS else self._mask_arg(value)
                for key, value in arg.items()
            }
        return arg

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)

        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(self._mask_arg(arg) for arg in record.args)
            else:
                record.args = self._mask_arg(record.args)

        return True


logging.basicConfig(
    level=numeric_level,
    format='[%(asctime)s] %(levelname)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

sensitive_filter = SensitiveDataFilter()
root_logger = logging.getLogger()
root_logger.addFilter(sensitive_filter)

# Add filter to all handlers to catch library loggers
for handler in root_logger.handlers:
    handler.addFilter(sensitive_filter)

logger = logging.getLogger("nest_archiver")
