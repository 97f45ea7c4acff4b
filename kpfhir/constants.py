from __future__ import annotations

import logging

from auth.smart_oauth2 import KP_AUTHORIZE_URL, KP_FHIR_BASE_URL, KP_TOKEN_URL

LOGGER = logging.getLogger("kpfhir")
APP_VERSION = "0.1.0"
APP_NAME = "kp-fhir-client"

DEFAULT_FHIR_BASE_URL = KP_FHIR_BASE_URL
DEFAULT_AUTHORIZE_URL = KP_AUTHORIZE_URL
DEFAULT_TOKEN_URL = KP_TOKEN_URL
DEFAULT_SESSION_STORE_PATH = ".kp_session.json"

ERROR_BODY_LOG_LIMIT = 1000
