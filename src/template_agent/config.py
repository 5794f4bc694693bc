import os

from dotenv import load_dotenv

load_dotenv(os.getenv("ENV_FILE"), override=True)

# General
PRODUCT = os.getenv("PRODUCT", "template-agent")
ENV = os.getenv("ENV", "stg")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

# Language model
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "") or None
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")

# WLO / edu-sharing repository
WLO_ENDPOINTS = {
    "PRODUCTION": "https://redaktion.openeduhub.net/edu-sharing/rest",
    "STAGING": "https://repository.staging.openeduhub.net/edu-sharing/rest",
}
WLO_ENDPOINT = os.getenv("WLO_ENDPOINT", "PRODUCTION")
WLO_PROXY_URL = os.getenv("WLO_PROXY_URL", "") or None
WLO_TIMEOUT = float(os.getenv("WLO_TIMEOUT", "30"))
WLO_USER_AGENT = "WLO-KI-Editor"

# Batch size is a rate limit against the search endpoint: at most this many
# search requests are in flight at once.
BATCH_SIZE = 5
DEFAULT_MAX_ITEMS = int(os.getenv("WLO_MAX_ITEMS", "5"))
DEFAULT_COMBINE_MODE = os.getenv("WLO_COMBINE_MODE", "AND")

PREVIEW_URL_TEMPLATE = (
    "https://redaktion.openeduhub.net/edu-sharing/preview"
    "?nodeId={node_id}&storeProtocol=workspace&storeId=SpacesStore"
)
FALLBACK_RESOURCE_TYPE = "Lernressource"
RENDER_URL_TEMPLATE = (
    "https://redaktion.openeduhub.net/edu-sharing/components/render/{node_id}"
)

# Role-level content suggestion
ROLE_BATCH_SIZE = 20
SUGGESTION_CANDIDATES = 30
RANKED_CANDIDATES = 20
SUGGESTION_TOP_N = 3


def resolve_endpoint(name_or_url: str) -> str:
    """Map an endpoint name (PRODUCTION / STAGING) to its base URL.

    Anything that is not a known name is treated as a URL and returned as-is.
    """
    return WLO_ENDPOINTS.get(name_or_url.upper(), name_or_url).rstrip("/")
