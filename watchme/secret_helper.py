# Helper for loading the TMDB_API_KEY from Secret Manager at runtime.
# Usage:
#   - Call "secret_helper.inject_tmdb_key()" before watchme.metadata is imported,
#     since the TMDb module reads the key from the environment at import time.
#
# Lookup order:
#  - the TMDB_API_KEY env var (local development)
#  - the secret named by TMDB_SECRET_NAME in the project GCP_PROJECT
# Failures are logged, not raised; without a key the metadata lookups
# answer with an auth error and the watch list keeps working.

from google.cloud import secretmanager
import os
import logging

_logger = logging.getLogger(__name__)

ENV_VAR = "TMDB_API_KEY"


def get_secret_from_manager(project_id: str, secret_name: str) -> str:
    client = secretmanager.SecretManagerServiceClient()
    name = f"projects/{project_id}/secrets/{secret_name}/versions/latest"
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("utf-8")


def load_tmdb_key(project_id: str = None, secret_name: str = None) -> str | None:
    """
    Return the TMDb API key, from the environment or Secret Manager.
    Returns None (and logs why) when neither has it.
    """
    env_val = os.environ.get(ENV_VAR)
    if env_val:
        _logger.debug("Using TMDB_API_KEY from environment.")
        return env_val

    project_id = project_id or os.environ.get("GCP_PROJECT")
    secret_name = secret_name or os.environ.get("TMDB_SECRET_NAME", "tmdb-api-key")

    if not project_id:
        _logger.warning("GCP_PROJECT not set and no TMDB_API_KEY env var found.")
        return None

    # Outside GCP without explicit opt-in the client would hang looking for credentials
    is_gcp = os.environ.get("GAE_ENV") or os.environ.get("CLOUD_RUN_SERVICE") or os.environ.get("GOOGLE_CLOUD_PROJECT")
    if not is_gcp and not os.environ.get("ENABLE_GCP_SECRETS"):
        _logger.warning("Not running in GCP and ENABLE_GCP_SECRETS not set. Skipping Secret Manager lookup.")
        return None

    try:
        key = get_secret_from_manager(project_id, secret_name)
    except Exception as e:
        _logger.exception("Failed to load TMDB_API_KEY from Secret Manager: %s", e)
        return None
    _logger.info("Loaded TMDB_API_KEY from Secret Manager.")
    return key


def inject_tmdb_key(project_id: str = None, secret_name: str = None) -> bool:
    """
    Ensure os.environ['TMDB_API_KEY'] is set.
    Returns True if the key was set (from env or Secret Manager), False otherwise.
    """
    if os.environ.get(ENV_VAR):
        return True

    key = load_tmdb_key(project_id=project_id, secret_name=secret_name)
    if key:
        os.environ[ENV_VAR] = key
        return True

    return False
