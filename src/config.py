"""Configuration settings for the point prevalence survey service."""

import os


def get_postgres_uri():
    """Get database connection URI from environment variables."""
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        return database_url
    host = os.environ.get("DB_HOST", "localhost")
    port = os.environ.get("DB_PORT", "5432")
    password = os.environ.get("DB_PASSWORD", "postgres")
    user = os.environ.get("DB_USER", "postgres")
    db_name = os.environ.get("DB_NAME", "pps_db")
    return f"postgresql://{user}:{password}@{host}:{port}/{db_name}"


def get_redis_host_and_port():
    """Get Redis connection details from environment variables."""
    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", "6379"))
    return dict(host=host, port=port)


def get_api_port():
    """Get the port the API server listens on."""
    return int(os.environ.get("SERVER_PORT", "8080"))


def get_log_level():
    return os.environ.get("LOG_LEVEL", "INFO").upper()


DUPLICATE_POLICIES = ("skip", "upsert")
HEADER_BINDINGS = ("auto", "position", "strict")


def get_upload_config():
    """
    Get CSV upload and import settings from environment variables.

    Raises ValueError for an unknown duplicate policy or header binding, so a
    misconfigured deployment fails at startup rather than on every upload.
    """
    max_file_size = int(os.environ.get("UPLOAD_MAX_BYTES", str(10 * 1024 * 1024)))
    duplicate_policy = os.environ.get("PPS_DUPLICATE_POLICY", "skip").lower()
    header_binding = os.environ.get("PPS_HEADER_BINDING", "auto").lower()

    if duplicate_policy not in DUPLICATE_POLICIES:
        raise ValueError(
            f"PPS_DUPLICATE_POLICY must be one of {', '.join(DUPLICATE_POLICIES)}, got {duplicate_policy!r}"
        )
    if header_binding not in HEADER_BINDINGS:
        raise ValueError(
            f"PPS_HEADER_BINDING must be one of {', '.join(HEADER_BINDINGS)}, got {header_binding!r}"
        )

    return dict(
        max_file_size=max_file_size,
        allowed_extensions=(".csv",),
        duplicate_policy=duplicate_policy,
        header_binding=header_binding,
    )
