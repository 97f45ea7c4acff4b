from __future__ import annotations

import urllib.parse


def is_http_url(uri: str) -> bool:
    parsed = urllib.parse.urlparse(uri)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def query_params_from_url(url: str) -> dict[str, str]:
    """Return the first value of each query parameter in ``url``."""
    query = urllib.parse.urlparse(url).query
    return {key: values[0] for key, values in urllib.parse.parse_qs(query).items()}


def build_resource_url(base_url: str, resource_path: str) -> str:
    """Join a FHIR resource path onto the API base URL.

    Only relative paths are accepted so the bearer token is never sent to
    another host.
    """
    parsed = urllib.parse.urlparse(resource_path)
    if parsed.scheme or parsed.netloc or resource_path.startswith("//"):
        raise ValueError(f"Resource path must be relative to the FHIR base URL: {resource_path!r}")
    return f"{base_url.rstrip('/')}/{resource_path.lstrip('/')}"
