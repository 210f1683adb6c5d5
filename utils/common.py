import os
from dotenv import load_dotenv

from utils.http import ApiSession

# Load environment variables
load_dotenv()

# Config values
SITE_BASE = os.getenv("JIRA_CLOUD_SITE_BASE", "https://your-domain.atlassian.net")
OPSGENIE_API_BASE = os.getenv("OPSGENIE_API_BASE", "https://api.opsgenie.com")
API_TIMEOUT = int(os.getenv("JIRA_CLOUD_API_TIMEOUT", "30"))

# HTTP connection pool settings
HTTP_POOL_SIZE = int(os.getenv("JIRA_CLOUD_HTTP_POOL_SIZE", "100"))
HTTP_MAX_RETRIES = int(os.getenv("JIRA_CLOUD_HTTP_MAX_RETRIES", "5"))
HTTP_BACKOFF_FACTOR = float(os.getenv("JIRA_CLOUD_HTTP_BACKOFF_FACTOR", "0.5"))


# Auth helpers
def get_auth():
    email = os.getenv("JIRA_CLOUD_EMAIL")
    api_token = os.getenv("JIRA_CLOUD_API_TOKEN")
    if not email or not api_token:
        raise RuntimeError("JIRA_CLOUD_EMAIL and JIRA_CLOUD_API_TOKEN must be set in env")
    return (email, api_token)


def jira_session(site_base=None) -> ApiSession:
    """Build the Jira Cloud ApiSession from the environment.

    A bearer token (JIRA_CLOUD_BEARER_TOKEN) wins over email + API token.
    """
    base = site_base or SITE_BASE
    bearer = os.getenv("JIRA_CLOUD_BEARER_TOKEN")
    if bearer:
        return ApiSession.bearer(base, bearer, timeout=API_TIMEOUT)
    email, api_token = get_auth()
    return ApiSession.basic(base, email, api_token, timeout=API_TIMEOUT)


def opsgenie_session(api_base=None) -> ApiSession:
    api_key = os.getenv("OPSGENIE_API_KEY")
    if not api_key:
        raise RuntimeError("OPSGENIE_API_KEY must be set in env")
    return ApiSession.genie_key(api_base or OPSGENIE_API_BASE, api_key, timeout=API_TIMEOUT)
